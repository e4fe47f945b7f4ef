"""
Bootloader and initramfs registrar.

Quiets the kernel command line in /etc/default/grub and installs an
init-top script that prints a banner on the console during early boot.
Both files are snapshotted at registration time so undo can write them
back verbatim.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from mimo_common.exceptions import CommandError
from mimo_utils.atomic_write import FileSnapshot, atomic_write_bytes

from ..runner import CommandRunner
from ..templates import TemplateLoader
from ..transaction import Action, Transaction

logger = logging.getLogger(__name__)

GRUB_CMDLINE = 'GRUB_CMDLINE_LINUX_DEFAULT="quiet loglevel=0 systemd.show_status=0"'
_CMDLINE_RE = re.compile(r"^GRUB_CMDLINE_LINUX_DEFAULT=.*$", re.MULTILINE)

UPDATE_GRUB = ("update-grub",)
UPDATE_INITRAMFS = ("update-initramfs", "-u")


@dataclass(frozen=True)
class FileEditContext:
    """A boot file to rewrite, and the command that regenerates boot images from it."""
    original: FileSnapshot
    content: bytes
    mode: Optional[int]
    refresh_cmd: Tuple[str, ...]
    runner: CommandRunner

    @property
    def path(self) -> Path:
        return self.original.path


def set_cmdline(grub_text: str, line: str = GRUB_CMDLINE) -> str:
    """Replace the GRUB_CMDLINE_LINUX_DEFAULT line, appending it if absent."""
    if _CMDLINE_RE.search(grub_text):
        return _CMDLINE_RE.sub(lambda _m: line, grub_text)
    if grub_text and not grub_text.endswith("\n"):
        grub_text += "\n"
    return grub_text + line + "\n"


def _apply_edit(ctx: FileEditContext) -> None:
    atomic_write_bytes(ctx.path, ctx.content, ctx.mode)
    try:
        ctx.runner.run(list(ctx.refresh_cmd))
    except CommandError:
        # Put the file back so this step leaves nothing half-done.
        ctx.original.restore()
        raise
    logger.info(f"{ctx.path} updated")


def _revert_edit(ctx: FileEditContext) -> None:
    ctx.original.restore()

    # The restored file is what matters; regeneration is best effort.
    try:
        ctx.runner.run(list(ctx.refresh_cmd))
    except CommandError as e:
        logger.warning(f"{ctx.refresh_cmd[0]} after restoring {ctx.path} failed: {e}")


def build_grub_action(grub_file: Path, runner: CommandRunner) -> Action:
    original = FileSnapshot.capture(grub_file)
    text = original.content.decode("utf-8", errors="surrogateescape") if original.existed else ""
    return Action(
        name="modify grub cmdline",
        do=_apply_edit,
        undo=_revert_edit,
        context=FileEditContext(
            original=original,
            content=set_cmdline(text).encode("utf-8", errors="surrogateescape"),
            mode=None,
            refresh_cmd=UPDATE_GRUB,
            runner=runner,
        ),
    )


def build_initramfs_action(
    script_path: Path,
    runner: CommandRunner,
    templates: TemplateLoader,
    banner: str,
) -> Action:
    content = templates.render("initramfs-msg.sh.j2", banner=banner)
    return Action(
        name=f"add initramfs {script_path.name}",
        do=_apply_edit,
        undo=_revert_edit,
        context=FileEditContext(
            original=FileSnapshot.capture(script_path),
            content=content.encode("utf-8"),
            mode=0o755,
            refresh_cmd=UPDATE_INITRAMFS,
            runner=runner,
        ),
    )


def register_grub_actions(
    txn: Transaction,
    grub_file: Path,
    initramfs_script: Path,
    runner: CommandRunner,
    templates: TemplateLoader,
    banner: str,
) -> None:
    """Register the GRUB cmdline edit followed by the initramfs banner script."""
    txn.add(build_grub_action(Path(grub_file), runner))
    txn.add(build_initramfs_action(Path(initramfs_script), runner, templates, banner))

"""
MOTD registrar.

Moves every script out of /etc/update-motd.d into the run's backup directory
so logins stop printing the stock banner. Undo moves them back.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from mimo_common.exceptions import BackupMissingError

from ..transaction import Action, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MotdContext:
    motd_dir: Path
    backup_dir: Path
    entries: Tuple[str, ...]


def _move(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))


def _apply_motd(ctx: MotdContext) -> None:
    if not ctx.entries:
        logger.debug(f"{ctx.motd_dir} is empty, nothing to disable")
        return
    ctx.backup_dir.mkdir(parents=True, exist_ok=True)
    moved = []
    try:
        for name in ctx.entries:
            src = ctx.motd_dir / name
            if not src.exists() and not src.is_symlink():
                continue
            _move(src, ctx.backup_dir / name)
            moved.append(name)
    except Exception:
        # Put back what already left, newest first, before reporting.
        for name in reversed(moved):
            _move(ctx.backup_dir / name, ctx.motd_dir / name)
        raise
    logger.info(f"MOTD scripts moved to {ctx.backup_dir}")


def _revert_motd(ctx: MotdContext) -> None:
    missing = []
    for name in ctx.entries:
        live = ctx.motd_dir / name
        saved = ctx.backup_dir / name
        if saved.exists() or saved.is_symlink():
            _move(saved, live)
        elif not (live.exists() or live.is_symlink()):
            missing.append(name)

    if missing:
        raise BackupMissingError(
            ", ".join(str(ctx.motd_dir / n) for n in missing),
            str(ctx.backup_dir),
        )


def register_motd_actions(txn: Transaction, motd_dir: Path, backup_dir: Path) -> None:
    """
    Register the MOTD backup-and-clear action.

    The directory listing is captured now; scripts added later are left alone.
    """
    motd_dir = Path(motd_dir)
    entries: Tuple[str, ...] = ()
    if motd_dir.is_dir():
        entries = tuple(sorted(p.name for p in motd_dir.iterdir()))

    txn.add(Action(
        name="motd backup and disable",
        do=_apply_motd,
        undo=_revert_motd,
        context=MotdContext(
            motd_dir=motd_dir,
            backup_dir=Path(backup_dir) / "motd",
            entries=entries,
        ),
    ))


def disable_motd(motd_dir: Path) -> int:
    """
    Remove every entry in the MOTD directory without keeping a backup.

    Returns:
        Number of entries removed.
    """
    motd_dir = Path(motd_dir)
    if not motd_dir.is_dir():
        return 0
    removed = 0
    for entry in motd_dir.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed

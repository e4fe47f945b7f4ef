"""
Init file registrar.

Writes files whose contents are embedded in the bundle configuration
(unit files, helper scripts, small config files).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mimo_utils.atomic_write import FileSnapshot, atomic_write_bytes

from ..config import InitConfig
from ..transaction import Action, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitFileContext:
    original: FileSnapshot
    content: bytes
    mode: int


def _apply_init_file(ctx: InitFileContext) -> None:
    atomic_write_bytes(ctx.original.path, ctx.content, ctx.mode)
    logger.debug(f"Wrote {ctx.original.path} ({ctx.mode:04o})")


def _revert_init_file(ctx: InitFileContext) -> None:
    ctx.original.restore()


def register_init_file_actions(txn: Transaction, init_config: InitConfig) -> int:
    """
    Register one write action per configured file. Directory entries are
    skipped because parents are created when their files are written.

    Returns:
        Number of actions registered.
    """
    count = 0
    for file_cfg in init_config.files:
        if file_cfg.is_dir:
            continue
        original = FileSnapshot.capture(file_cfg.path)
        txn.add(Action(
            name=f"create init file {original.path}",
            do=_apply_init_file,
            undo=_revert_init_file,
            context=InitFileContext(
                original=original,
                content=file_cfg.content.encode("utf-8"),
                mode=file_cfg.file_mode,
            ),
        ))
        count += 1
    return count

"""
File copy registrar.

Each file mapping becomes one action. If the destination already exists at
registration time, a backup location inside the run's backup directory is
reserved; ``do`` moves the original there before copying and ``undo`` moves
it back. Destinations that did not exist are simply removed on undo.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from mimo_common.exceptions import BackupMissingError, SourceNotFoundError

from ..config import FileMapping
from ..transaction import Action, Transaction

logger = logging.getLogger(__name__)

# Files dropped with these suffixes are made executable.
EXECUTABLE_SUFFIXES = (".sh", ".service")


@dataclass(frozen=True)
class CopyContext:
    """State captured for one copy when it was registered."""
    source: Path
    destination: Path
    backup: Optional[Path] = None


def _exists(path: Path) -> bool:
    return os.path.lexists(path)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif _exists(path):
        path.unlink()


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def copy_file(src: Path, dst: Path) -> None:
    """
    Copy one file, creating parent directories and keeping the source mode.

    Raises:
        SourceNotFoundError: ``src`` does not exist.
        IsADirectoryError: ``src`` is a directory.
    """
    src, dst = Path(src), Path(dst)
    if not src.exists():
        raise SourceNotFoundError(str(src))
    if src.is_dir():
        raise IsADirectoryError(f"source {src} is a directory")

    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, dst)
    shutil.copymode(src, dst)


def copy_dir(src: Path, dst: Path) -> None:
    """
    Recursively copy a directory tree. Symlinks are copied as links.

    Raises:
        SourceNotFoundError: ``src`` does not exist.
        NotADirectoryError: ``src`` is not a directory.
    """
    src, dst = Path(src), Path(dst)
    if not src.exists():
        raise SourceNotFoundError(str(src))
    if not src.is_dir():
        raise NotADirectoryError(f"source {src} is not a directory")

    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dst, symlinks=True)


def _apply_copy(ctx: CopyContext) -> None:
    if not ctx.source.exists():
        raise SourceNotFoundError(str(ctx.source))

    ctx.destination.parent.mkdir(parents=True, exist_ok=True)

    moved_aside = False
    if _exists(ctx.destination):
        if ctx.backup is None:
            # Appeared after registration; nothing captured to restore it.
            logger.warning(f"{ctx.destination} appeared after registration; replacing it")
            _remove(ctx.destination)
        else:
            ctx.backup.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(ctx.destination), str(ctx.backup))
            moved_aside = True

    try:
        if ctx.source.is_dir():
            copy_dir(ctx.source, ctx.destination)
        else:
            copy_file(ctx.source, ctx.destination)
            if ctx.destination.suffix in EXECUTABLE_SUFFIXES:
                _make_executable(ctx.destination)
    except Exception:
        # Leave no half-copied destination behind.
        if _exists(ctx.destination):
            _remove(ctx.destination)
        if moved_aside:
            shutil.move(str(ctx.backup), str(ctx.destination))
        raise

    logger.debug(f"Copied {ctx.source} -> {ctx.destination}")


def _revert_copy(ctx: CopyContext) -> None:
    if ctx.backup is None:
        if _exists(ctx.destination):
            _remove(ctx.destination)
        return

    if _exists(ctx.backup):
        if _exists(ctx.destination):
            _remove(ctx.destination)
        shutil.move(str(ctx.backup), str(ctx.destination))
        logger.debug(f"Restored {ctx.destination} from {ctx.backup}")
        return

    if _exists(ctx.destination):
        # The original was never moved aside.
        return
    raise BackupMissingError(str(ctx.destination), str(ctx.backup))


def backup_path_for(destination: Path, backup_dir: Path) -> Path:
    """Location under ``backup_dir`` that mirrors ``destination``."""
    return backup_dir / "files" / str(destination).lstrip(os.sep)


def build_copy_action(mapping: FileMapping, backup_dir: Path) -> Action:
    """Capture the destination's current state and build its copy action."""
    src = Path(mapping.src)
    dst = Path(mapping.dst)
    backup = backup_path_for(dst, backup_dir) if _exists(dst) else None
    return Action(
        name=f"copy {src} -> {dst}",
        do=_apply_copy,
        undo=_revert_copy,
        context=CopyContext(source=src, destination=dst, backup=backup),
    )


def register_copy_actions(
    txn: Transaction,
    mappings: Iterable[FileMapping],
    backup_dir: Path,
) -> int:
    """
    Register one copy action per mapping, in order.

    Args:
        txn: Transaction to populate
        mappings: Source/destination pairs
        backup_dir: This run's backup directory

    Returns:
        Number of actions registered.
    """
    count = 0
    for mapping in mappings:
        txn.add(build_copy_action(mapping, Path(backup_dir)))
        count += 1
    logger.debug(f"Registered {count} copy action(s)")
    return count

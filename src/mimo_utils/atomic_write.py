"""
Atomic file operations for the MIMO installer.

Every file the installer rewrites on the host goes through here: either the
new content is fully in place or the old file is untouched. Snapshots record
what a file looked like before an update so it can be put back verbatim.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

DEFAULT_MODE = 0o644


def _sync_directory(directory: Path) -> None:
    # Persist the rename itself; not every platform can open a directory.
    try:
        fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
    except (OSError, AttributeError):
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_bytes(
    path: Union[str, Path],
    content: bytes,
    mode: Optional[int] = None,
) -> None:
    """
    Replace ``path`` with ``content`` in a single rename.

    Args:
        path: Destination file, parents are created
        content: New file content
        mode: Permission bits; None keeps the current file's mode,
            or 0644 for a new file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None:
        mode = path.stat().st_mode & 0o7777 if path.is_file() else DEFAULT_MODE

    # Same directory as the target so os.replace never crosses filesystems.
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_name, mode)
        os.replace(temp_name, path)
    except Exception:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise
    _sync_directory(path.parent)


def atomic_write_text(
    path: Union[str, Path],
    content: str,
    mode: Optional[int] = None,
) -> None:
    """UTF-8 text variant of :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, content.encode("utf-8"), mode)


@dataclass(frozen=True)
class FileSnapshot:
    """Content and mode of a regular file at one point in time, or its absence."""
    path: Path
    content: Optional[bytes] = None
    mode: Optional[int] = None

    @classmethod
    def capture(cls, path: Union[str, Path]) -> "FileSnapshot":
        path = Path(path)
        if not path.is_file():
            return cls(path=path)
        return cls(path=path, content=path.read_bytes(), mode=path.stat().st_mode & 0o7777)

    @property
    def existed(self) -> bool:
        return self.content is not None

    def restore(self) -> None:
        """Write the captured content back, or remove a file that did not exist."""
        if self.content is None:
            if self.path.is_file() or self.path.is_symlink():
                self.path.unlink()
            return
        atomic_write_bytes(self.path, self.content, self.mode)


def unique_backup_dir(root: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """
    Per-run backup directory under ``root``.

    The name joins a timestamp and the process id, so concurrent or
    back-to-back runs never share one. Nothing is created on disk.

    Returns:
        Path like ``<root>/20250101-120000-4242``
    """
    now = now or datetime.now()
    return Path(root) / f"{now:%Y%m%d-%H%M%S}-{os.getpid()}"

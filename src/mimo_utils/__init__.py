"""
MIMO Utility Modules

File-level helpers shared by the installer's registrars.
"""

from .atomic_write import (
    FileSnapshot,
    atomic_write_text,
    atomic_write_bytes,
    unique_backup_dir,
)

__all__ = [
    "FileSnapshot",
    "atomic_write_text",
    "atomic_write_bytes",
    "unique_backup_dir",
]

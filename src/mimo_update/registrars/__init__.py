"""
Registrars

Each registrar inspects the host, captures whatever its undo will need, and
adds reversible actions to a caller-supplied Transaction.
"""

from .fileops import register_copy_actions, copy_file, copy_dir
from .bootloader import register_grub_actions
from .motd import register_motd_actions, disable_motd
from .init_files import register_init_file_actions
from .services import register_service_actions, service_units

__all__ = [
    "register_copy_actions",
    "copy_file",
    "copy_dir",
    "register_grub_actions",
    "register_motd_actions",
    "disable_motd",
    "register_init_file_actions",
    "register_service_actions",
    "service_units",
]

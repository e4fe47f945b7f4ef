"""
MIMO Common Utilities

Exception hierarchy, logging setup and decorators shared by the installer.
"""

from .exceptions import (
    MimoError, TransactionError, TransactionStateError, ActionFailedError,
    RollbackError, ActionError, SourceNotFoundError, BackupMissingError,
    CommandError, InstallError, BundleError, ChecksumError, TargetError,
    ConfigError, InvalidConfigError, MissingConfigError, PrivilegeError,
    TemplateNotFoundError,
)
from .decorators import require_root, timed
from .logging_config import setup_logging, get_logger, LogContext

__all__ = [
    # Exceptions
    "MimoError", "TransactionError", "TransactionStateError", "ActionFailedError",
    "RollbackError", "ActionError", "SourceNotFoundError", "BackupMissingError",
    "CommandError", "InstallError", "BundleError", "ChecksumError", "TargetError",
    "ConfigError", "InvalidConfigError", "MissingConfigError", "PrivilegeError",
    "TemplateNotFoundError",
    # Decorators
    "require_root", "timed",
    # Logging
    "setup_logging", "get_logger", "LogContext",
]

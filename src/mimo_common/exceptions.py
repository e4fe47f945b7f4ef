"""
Errors raised by the MIMO installer.

Every error carries a stable ``code`` for log filtering and a ``details``
mapping that ends up in JSON logs. ``recoverable`` tells the CLI whether a
rerun can be expected to help or whether the host needs manual attention.
"""

from typing import Optional, Dict, Any, Sequence, Tuple


class MimoError(Exception):
    """
    Root of the installer's error tree.

    Attributes:
        message: Text shown to the operator
        code: Stable identifier, defaults to the class name
        details: Structured fields for JSON logs
        cause: Lower-level exception this one wraps, if any
        recoverable: False when the host may be left in a mixed state
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__
        self.details = dict(details or {})
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        parts = [f"[{self.code}] {self.message}"]
        if self.details:
            fields = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"details: {fields}")
        if self.cause is not None:
            parts.append(f"caused by: {self.cause}")
        return "; ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form attached as ``error`` to JSON log lines that carry this exception."""
        data: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            data["details"] = self.details
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data


# =============================================================================
# Transaction errors
# =============================================================================

class TransactionError(MimoError):
    """Base for transaction engine errors."""
    pass


class TransactionStateError(TransactionError):
    """Operation is not valid in the transaction's current state."""
    def __init__(self, operation: str, state: str):
        super().__init__(
            f"Cannot {operation} a transaction in state '{state}'",
            code="TXN_INVALID_STATE",
            details={"operation": operation, "state": state},
            recoverable=False,
        )


def _format_cause(cause: BaseException) -> str:
    # MimoError.__str__ carries a code prefix; operators want the bare message.
    if isinstance(cause, MimoError):
        return cause.message
    return str(cause) or cause.__class__.__name__


class RollbackError(TransactionError):
    """
    One or more compensating actions failed during rollback.

    ``failures`` keeps the (action name, cause) pairs in the order the undo
    walk met them, i.e. most recently applied action first.
    """

    def __init__(self, failures: Sequence[Any]):
        self.failures: Tuple[Any, ...] = tuple(failures)
        super().__init__(
            f"Rollback incomplete: {len(self.failures)} action(s) could not be undone",
            code="ROLLBACK_FAILED",
            details={"actions": [f.action_name for f in self.failures]},
            recoverable=False,
        )

    def lines(self):
        return [
            f"rollback of {f.action_name} failed: {_format_cause(f.cause)}"
            for f in self.failures
        ]

    def __str__(self):
        return "\n".join([f"[{self.code}] {self.message}"] + self.lines())


class ActionFailedError(TransactionError):
    """
    A forward action failed and the transaction was rolled back.

    ``rollback_failures`` is empty when every compensating action succeeded.
    """

    def __init__(
        self,
        action_name: str,
        cause: BaseException,
        rollback_failures: Sequence[Any] = (),
    ):
        self.action_name = action_name
        self.rollback_failures: Tuple[Any, ...] = tuple(rollback_failures)
        super().__init__(
            f"{action_name} failed: {_format_cause(cause)}",
            code="ACTION_FAILED",
            details={"action": action_name},
            cause=cause,
            recoverable=not self.rollback_failures,
        )

    @property
    def rolled_back_cleanly(self) -> bool:
        return not self.rollback_failures

    def lines(self):
        lines = [self.message]
        lines.extend(
            f"rollback of {f.action_name} failed: {_format_cause(f.cause)}"
            for f in self.rollback_failures
        )
        return lines

    def __str__(self):
        lines = self.lines()
        return "\n".join([f"[{self.code}] {lines[0]}"] + lines[1:])


# =============================================================================
# Action errors (raised from inside do/undo)
# =============================================================================

class ActionError(MimoError):
    """Base for failures inside a forward or compensating operation."""
    pass


class SourceNotFoundError(ActionError):
    """Copy source does not exist."""
    def __init__(self, path: str):
        super().__init__(
            f"source not found: {path}",
            code="SOURCE_NOT_FOUND",
            details={"path": path},
        )


class BackupMissingError(ActionError):
    """A backup that an undo relies on has disappeared."""
    def __init__(self, path: str, backup: str):
        super().__init__(
            f"backup {backup} for {path} is missing",
            code="BACKUP_MISSING",
            details={"path": path, "backup": backup},
            recoverable=False,
        )


class CommandError(ActionError):
    """External tool exited with a non-zero status."""
    def __init__(self, command: str, returncode: int, output: str = ""):
        message = f"{command} failed with exit code {returncode}"
        if output:
            message += f": {output}"
        super().__init__(
            message,
            code="COMMAND_FAILED",
            details={"command": command, "returncode": returncode},
        )
        self.command = command
        self.returncode = returncode
        self.output = output


# =============================================================================
# Bundle and target errors
# =============================================================================

class InstallError(MimoError):
    """Something outside the transaction stopped the update."""


class BundleError(InstallError):
    """Resource bundle cannot be read or unpacked."""
    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Resource bundle {path}: {reason}",
            code="BUNDLE_ERROR",
            details={"path": path, "reason": reason},
            recoverable=False,
        )


class ChecksumError(InstallError):
    """The bundle's SHA-256 does not match its published digest."""
    def __init__(self, filename: str, expected: str, actual: str):
        super().__init__(
            f"{filename} is corrupt: sha256 {actual} does not match {expected}",
            code="CHECKSUM_MISMATCH",
            details={"file": filename, "expected": expected, "actual": actual},
            recoverable=False,
        )


class TargetError(InstallError):
    """Storage target daemon could not be stopped or restarted."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, code="TARGET_ERROR", cause=cause)


# =============================================================================
# Bundle configuration errors
# =============================================================================

class ConfigError(MimoError):
    """The bundle's config.json or init mapping is unusable."""


class InvalidConfigError(ConfigError):
    """A configuration field has the wrong type or value."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"config field '{field}' ({value!r}) {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": repr(value)},
        )


class MissingConfigError(ConfigError):
    """A required configuration field is absent."""
    def __init__(self, field: str):
        super().__init__(
            f"config field '{field}' is required",
            code="MISSING_CONFIG",
            details={"field": field},
        )


class PrivilegeError(MimoError):
    """The update was started without root."""
    def __init__(self, operation: str):
        super().__init__(
            f"{operation} requires root privileges. Run with sudo.",
            code="ROOT_REQUIRED",
            details={"operation": operation},
            recoverable=False,
        )


class TemplateNotFoundError(MimoError):
    """No template search path holds the requested file."""
    def __init__(self, template_name: str):
        super().__init__(
            f"installer template {template_name} is not available",
            code="TEMPLATE_NOT_FOUND",
            details={"template": template_name},
        )

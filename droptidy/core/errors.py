from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from droptidy.core.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class DropTidyError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Validation ----
class ValidationError(DropTidyError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Authentication ----
class AuthenticationError(DropTidyError):
    def __init__(self, user_message: str = "Invalid username or password", **ctx: Any):
        super().__init__("authentication_failed", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class AccountLockedError(DropTidyError):
    def __init__(self, user_message: str = "Account is locked.", *, retry_after_seconds: float = 0.0, **ctx: Any):
        super().__init__("account_locked", user_message, severity=Severity.WARN, recoverable=True, context=ctx)
        self.retry_after_seconds = float(retry_after_seconds)


class ResetCodeInvalidError(DropTidyError):
    def __init__(self, user_message: str = "Invalid or expired reset code", **ctx: Any):
        super().__init__("reset_code_invalid", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Directory ----
class AccountNotFoundError(DropTidyError):
    def __init__(self, user_message: str = "User not found", **ctx: Any):
        super().__init__("account_not_found", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class DuplicateUsernameError(DropTidyError):
    def __init__(self, user_message: str = "Username already exists", **ctx: Any):
        super().__init__("duplicate_username", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Invariants ----
class LastAdminError(DropTidyError):
    def __init__(self, user_message: str = "Cannot delete the last administrator account", **ctx: Any):
        super().__init__("last_admin", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class SelfDeletionError(DropTidyError):
    def __init__(self, user_message: str = "Cannot delete your own account", **ctx: Any):
        super().__init__("self_deletion", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Storage ----
class StorageError(DropTidyError):
    def __init__(self, user_message: str = "Storage error.", **ctx: Any):
        super().__init__("storage_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class ConfigError(DropTidyError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)

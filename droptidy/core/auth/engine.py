from __future__ import annotations

import math
import secrets
import time
from typing import Optional

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction
from droptidy.core.config.models import SecurityConfig
from droptidy.core.errors import AccountLockedError, AuthenticationError
from droptidy.core.identity.models import Account, AccountUpdate, iso_now
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger


def secrets_match(stored: str, given: str) -> bool:
    return secrets.compare_digest(str(stored).encode("utf-8"), str(given).encode("utf-8"))


class AuthenticationEngine:
    """
    Credential check with per-account lockout.

    States, derived from the stored record at call time:
    - active:  locked_until unset or already in the past
    - locked:  locked_until > now; verify() is rejected without looking at the secret

    A lockout that has run out is cleared lazily on the next verify(), which then
    starts a fresh failure count. There is no timer.
    """

    def __init__(self, *, store: AccountStore, audit: Optional[AuditLog] = None, cfg: Optional[SecurityConfig] = None, logger=None):
        self.store = store
        self.audit = audit
        self.cfg = cfg or SecurityConfig()
        self.logger = logger or component_logger("auth")

    @property
    def lockout_seconds(self) -> int:
        return int(self.cfg.lockout_minutes) * 60

    def verify(self, username: str, password: str) -> Account:
        """
        Returns the updated account on success.

        Raises AuthenticationError (unknown user or wrong secret) or
        AccountLockedError (active lockout, or this failure reached the threshold).
        """
        now = time.time()
        account = self.store.find(username)
        if account is None:
            raise AuthenticationError()

        if account.is_locked(now):
            remaining = float(account.locked_until) - now
            minutes = max(1, math.ceil(remaining / 60.0))
            raise AccountLockedError(
                f"Account is locked. Try again in {minutes} minute(s).",
                retry_after_seconds=remaining,
                username=username,
            )

        # an expired lockout restarts the count from zero
        prior_failures = 0 if account.locked_until is not None else int(account.failed_login_attempts)

        if secrets_match(account.password, password):
            updated = self.store.update(
                username,
                AccountUpdate(failed_login_attempts=0, locked_until=None, last_login=iso_now()),
            )
            self._audit(AuditAction.login, username, username, {"success": True})
            return updated

        attempts = prior_failures + 1
        threshold = int(self.cfg.max_login_attempts)
        if attempts >= threshold:
            until = now + self.lockout_seconds
            self.store.update(username, AccountUpdate(failed_login_attempts=attempts, locked_until=until))
            self.logger.warning(f"Account {username} locked for {self.cfg.lockout_minutes} minutes after {attempts} failed attempts")
            self._audit(AuditAction.account_lockout, username, None, {"reason": "Too many failed login attempts"})
            raise AccountLockedError(
                f"Too many failed attempts. Account is locked for {self.cfg.lockout_minutes} minutes.",
                retry_after_seconds=float(self.lockout_seconds),
                username=username,
            )

        self.store.update(username, AccountUpdate(failed_login_attempts=attempts, locked_until=None))
        remaining_attempts = threshold - attempts
        self._audit(AuditAction.login_failed, username, None, {"attempts_remaining": remaining_attempts})
        raise AuthenticationError(
            f"Invalid password. {remaining_attempts} attempts remaining.",
            username=username,
            attempts_remaining=remaining_attempts,
        )

    def _audit(self, action: str, username: str, performed_by: Optional[str], details: dict) -> None:
        if self.audit is not None:
            self.audit.append(action, username, performed_by, details)

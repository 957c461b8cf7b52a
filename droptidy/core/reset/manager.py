from __future__ import annotations

import secrets
import string
import time
from typing import Dict, Optional

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction
from droptidy.core.auth.engine import secrets_match
from droptidy.core.auth.policy import check_password
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.models import SecurityConfig
from droptidy.core.errors import ResetCodeInvalidError
from droptidy.core.identity.models import AccountUpdate
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger
from droptidy.core.reset.models import ResetToken

CODE_ALPHABET = string.ascii_uppercase + string.digits


class PasswordResetManager:
    """
    Single-use, time-bounded reset codes, held in memory for this process.

    At most one live token per username; issuing a new one discards the old.
    Expired tokens are swept at the start of every initiate()/complete() call.
    """

    def __init__(
        self,
        *,
        store: AccountStore,
        audit: Optional[AuditLog] = None,
        backups: Optional[BackupManager] = None,
        cfg: Optional[SecurityConfig] = None,
        logger=None,
    ):
        self.store = store
        self.audit = audit
        self.backups = backups
        self.cfg = cfg or SecurityConfig()
        self.logger = logger or component_logger("reset")
        self._tokens: Dict[str, ResetToken] = {}

    @property
    def ttl_seconds(self) -> int:
        return int(self.cfg.reset_code_ttl_minutes) * 60

    def sweep(self) -> int:
        now = time.time()
        dead = [u for u, t in self._tokens.items() if not t.is_live(now)]
        for u in dead:
            del self._tokens[u]
        return len(dead)

    def initiate(self, username: str) -> Optional[str]:
        """
        Issue a code for an existing account and return it; None for unknown
        usernames. Callers must present both cases identically.
        """
        self.sweep()
        if self.store.find(username) is None:
            return None
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(int(self.cfg.reset_code_length)))
        self._tokens[username] = ResetToken(username=username, code=code, expires_at=time.time() + self.ttl_seconds)
        if self.audit is not None:
            self.audit.append(AuditAction.password_reset_initiated, username, None, {})
        self.logger.info(f"Password reset code issued for {username}")
        return code

    def complete(self, username: str, code: str, new_password: str) -> None:
        """
        Consume a live code and set the new password.

        Wrong user, wrong code and expired code all raise the same
        ResetCodeInvalidError. A policy failure raises ValidationError and
        leaves the code usable.
        """
        self.sweep()
        token = self._tokens.get(username)
        if token is None or not token.is_live(time.time()) or not secrets_match(token.code, code or ""):
            raise ResetCodeInvalidError()

        check_password(new_password)
        if self.store.find(username) is None:
            del self._tokens[username]
            raise ResetCodeInvalidError()

        snap = self.backups.snapshot("password_reset") if self.backups is not None else None
        self.store.update(username, AccountUpdate(password=new_password, failed_login_attempts=0, locked_until=None))
        del self._tokens[username]
        if self.audit is not None:
            self.audit.append(AuditAction.password_reset_completed, username, None, {"backup": snap.path if snap else None})
        self.logger.info(f"Password reset completed for {username}")

    def pending(self) -> int:
        return len(self._tokens)

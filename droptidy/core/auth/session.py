from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from droptidy.core.identity.models import Account, AccountRole


@dataclass
class Session:
    """
    The operator currently signed in to this process.

    Owned by the caller (one per command surface); holds at most one identity.
    Clearing it never touches the account's counters.
    """

    _username: Optional[str] = None
    _role: Optional[AccountRole] = None

    def start(self, account: Account) -> None:
        self._username = account.username
        self._role = account.role

    def end(self) -> Optional[str]:
        who = self._username
        self._username = None
        self._role = None
        return who

    def refresh(self, account: Account) -> None:
        if self._username == account.username:
            self._role = account.role

    def is_logged_in(self) -> bool:
        return self._username is not None

    @property
    def username(self) -> Optional[str]:
        return self._username

    @property
    def role(self) -> Optional[AccountRole]:
        return self._role

    def is_admin(self) -> bool:
        return self._role == AccountRole.admin

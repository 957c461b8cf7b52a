from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class AccountRole(str, Enum):
    admin = "admin"
    user = "user"


class AccountStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class Account(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: AccountRole = AccountRole.user
    failed_login_attempts: int = Field(default=0, ge=0)
    locked_until: Optional[float] = None
    status: Optional[AccountStatus] = None
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.admin

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and float(self.locked_until) > now


class AccountUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    password: Optional[str] = None
    role: Optional[AccountRole] = None
    failed_login_attempts: Optional[int] = Field(default=None, ge=0)
    locked_until: Optional[float] = None
    status: Optional[AccountStatus] = None
    last_login: Optional[str] = None


def count_admins(accounts) -> int:  # noqa: ANN001
    return sum(1 for a in accounts if a.is_admin)

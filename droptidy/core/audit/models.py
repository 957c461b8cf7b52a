from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from droptidy.core.identity.models import iso_now


class AuditAction:
    register = "register"
    login = "login"
    login_failed = "login_failed"
    account_lockout = "account_lockout"
    logout = "logout"
    update = "update"
    delete = "delete"
    password_reset_initiated = "password_reset_initiated"
    password_reset_completed = "password_reset_completed"
    backup_created = "backup_created"
    backup_restored = "backup_restored"
    export_users = "export_users"
    import_users = "import_users"


class AuditEntry(BaseModel):
    # frozen: entries are never edited once appended
    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: str = Field(default_factory=iso_now)
    action: str = Field(min_length=1)
    username: str
    performed_by: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

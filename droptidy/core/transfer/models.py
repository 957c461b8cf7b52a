from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from droptidy.core.identity.models import Account, AccountRole, AccountStatus, iso_now

FORMAT_VERSION = "1.0"


class ImportMode(str, Enum):
    replace = "replace"
    merge = "merge"


class ExportMetadata(BaseModel):
    """
    Header block of an export bundle. Bundles written by older releases used
    `version`/`platform`; those names are still accepted on read.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    export_date: str = Field(
        default_factory=iso_now,
        validation_alias=AliasChoices("exportDate", "export_date"),
        serialization_alias="exportDate",
    )
    format_version: str = Field(
        default=FORMAT_VERSION,
        validation_alias=AliasChoices("formatVersion", "version", "format_version"),
        serialization_alias="formatVersion",
    )
    record_count: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("recordCount", "record_count"),
        serialization_alias="recordCount",
    )
    backend_identifier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("backendIdentifier", "platform", "backend_identifier"),
        serialization_alias="backendIdentifier",
    )


class ExportBundle(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metadata: ExportMetadata
    users: List[Account] = Field(default_factory=list)

    def to_json_obj(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ImportedAccount(BaseModel):
    """
    One incoming record of an import payload.

    Accepts both the stored snake_case field names and the camelCase names
    written by older releases, where `lockedUntil` is epoch milliseconds.
    Unknown keys are dropped.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: AccountRole
    failed_login_attempts: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("failed_login_attempts", "failedLoginAttempts"),
    )
    locked_until: Optional[float] = None
    status: Optional[AccountStatus] = None
    last_login: Optional[str] = Field(default=None, validation_alias=AliasChoices("last_login", "lastLogin"))
    created_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))

    @model_validator(mode="before")
    @classmethod
    def _legacy_lockout(cls, data: Any) -> Any:
        if isinstance(data, dict) and "locked_until" not in data and data.get("lockedUntil") is not None:
            data = dict(data)
            raw = data["lockedUntil"]
            # epoch milliseconds; anything else is left for field validation to reject
            data["locked_until"] = raw / 1000.0 if isinstance(raw, (int, float)) and not isinstance(raw, bool) else raw
        return data

    def to_account(self) -> Account:
        return Account(
            username=self.username,
            password=self.password,
            role=self.role,
            failed_login_attempts=self.failed_login_attempts or 0,
            locked_until=self.locked_until,
            status=self.status,
            last_login=self.last_login,
            created_at=self.created_at,
        )


class ImportSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: ImportMode
    source: str
    imported_count: int = 0
    updated_count: int = 0
    backup: Optional[str] = None

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from droptidy.core.transfer.models import ExportBundle


class CommandResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: Optional[str] = None
    error_code: Optional[str] = None


class LoginResult(CommandResult):
    retry_after_seconds: Optional[float] = None
    attempts_remaining: Optional[int] = None


class DeleteResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


class ResetInitResult(CommandResult):
    code: Optional[str] = None


class ExportResult(CommandResult):
    data: Optional[ExportBundle] = None
    path: Optional[str] = None


class ImportResult(CommandResult):
    imported_count: int = 0
    updated_count: int = 0
    backup: Optional[str] = None


class BackupResult(CommandResult):
    path: Optional[str] = None
    restored_count: Optional[int] = None

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StorageBackend(str, Enum):
    file = "file"
    sql = "sql"


class AppFileConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    log_dir: str = "logs"
    log_level: str = "INFO"


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: StorageBackend = StorageBackend.file
    data_dir: str = "data"
    users_file: str = "users.json"
    audit_file: str = "audit_log.json"
    backups_dir: str = "backups"
    sql_path: str = "data/droptidy.sqlite"


class SecurityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_login_attempts: int = Field(default=5, ge=1, le=1000)
    lockout_minutes: int = Field(default=15, ge=1, le=24 * 60)
    reset_code_ttl_minutes: int = Field(default=30, ge=1, le=24 * 60)
    reset_code_length: int = Field(default=8, ge=6, le=64)
    min_username_length: int = Field(default=3, ge=1, le=64)


class BackupConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    max_per_category: int = Field(default=10, ge=1, le=1000)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    app: AppFileConfig = Field(default_factory=AppFileConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)

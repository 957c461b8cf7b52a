from __future__ import annotations

import os
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from droptidy.core.config.io import atomic_write_json, read_json_file, quarantine_corrupt
from droptidy.core.config.models import AppConfig, AppFileConfig, BackupConfig, SecurityConfig, StorageBackend, StorageConfig
from droptidy.core.config.paths import ConfigFsPaths
from droptidy.core.errors import ConfigError


BACKEND_ENV = "DROPTIDY_STORAGE_BACKEND"

CONFIG_FILES: Dict[str, Type[BaseModel]] = {
    "app.json": AppFileConfig,
    "storage.json": StorageConfig,
    "security.json": SecurityConfig,
    "backup.json": BackupConfig,
}


class ConfigManager:
    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self._cfg: Optional[AppConfig] = None

    # ---------- public API ----------
    def load_all(self) -> AppConfig:
        if not self.read_only:
            os.makedirs(self.fs.config_dir, exist_ok=True)
        raw = self._load_raw_files()
        cfg = self._validate_all(raw)
        cfg = self._apply_env_overrides(cfg)
        self._cfg = cfg
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def save_non_sensitive(self, filename: str, data: Dict[str, Any]) -> None:
        """
        Atomic write, then reload and revalidate the whole config set.
        """
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        if filename not in CONFIG_FILES:
            raise ConfigError(f"Unknown config file: {filename}")
        if not isinstance(data, dict):
            raise ConfigError("Config data must be an object.")
        atomic_write_json(self.fs.config_file(filename), data, sort_keys=True)
        self.load_all()

    def open_paths(self) -> Dict[str, str]:
        st = self.get().storage
        data_dir = self.fs.resolve(st.data_dir)
        return {
            "config_dir": self.fs.config_dir,
            "data_dir": data_dir,
            "users_file": os.path.join(data_dir, st.users_file),
            "audit_file": os.path.join(data_dir, st.audit_file),
            "backups_dir": os.path.join(data_dir, st.backups_dir),
            "sql_path": self.fs.resolve(st.sql_path),
            "log_dir": self.fs.resolve(self.get().app.log_dir),
        }

    # ---------- internals ----------
    def _load_raw_files(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name, model in CONFIG_FILES.items():
            path = self.fs.config_file(name)
            rr = read_json_file(path)
            if rr.ok:
                out[name] = rr.data
                continue
            if rr.error and rr.error.startswith("corrupt_json") and not self.read_only:
                moved = quarantine_corrupt(path, self.fs.backups_dir)
                if self.logger:
                    self.logger.warning(f"Config {name} was corrupt; moved to {moved} and reset to defaults.")
            defaults = model().model_dump(mode="json")
            if not self.read_only:
                atomic_write_json(path, defaults, sort_keys=True)
            out[name] = defaults
        return out

    def _validate_all(self, raw: Dict[str, Dict[str, Any]]) -> AppConfig:
        try:
            return AppConfig(
                app=AppFileConfig.model_validate(raw.get("app.json") or {}),
                storage=StorageConfig.model_validate(raw.get("storage.json") or {}),
                security=SecurityConfig.model_validate(raw.get("security.json") or {}),
                backup=BackupConfig.model_validate(raw.get("backup.json") or {}),
            )
        except ValidationError as e:
            raise ConfigError("Configuration is invalid.", errors=e.errors(include_url=False)) from e

    def _apply_env_overrides(self, cfg: AppConfig) -> AppConfig:
        backend = os.environ.get(BACKEND_ENV, "").strip().lower()
        if not backend:
            return cfg
        try:
            chosen = StorageBackend(backend)
        except ValueError as e:
            raise ConfigError(f"{BACKEND_ENV} must be one of: file, sql.", value=backend) from e
        storage = cfg.storage.model_copy(update={"backend": chosen})
        return cfg.model_copy(update={"storage": storage})


_singleton: Optional[ConfigManager] = None


def get_config(*, root: str = ".", logger=None, read_only: bool = False) -> ConfigManager:
    global _singleton  # noqa: PLW0603
    if _singleton is None:
        _singleton = ConfigManager(fs=ConfigFsPaths(root), logger=logger, read_only=read_only)
        _singleton.load_all()
    return _singleton

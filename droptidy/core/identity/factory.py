from __future__ import annotations

from typing import Callable, Dict

from droptidy.core.config.models import StorageBackend, StorageConfig
from droptidy.core.identity.store import AccountStore
from droptidy.core.identity.store_json import JsonFileAccountStore
from droptidy.core.identity.store_sqlite import SqlAccountStore


def _file(paths: Dict[str, str], logger) -> AccountStore:  # noqa: ANN001
    return JsonFileAccountStore(path=paths["users_file"], logger=logger)


def _sql(paths: Dict[str, str], logger) -> AccountStore:  # noqa: ANN001
    return SqlAccountStore(path=paths["sql_path"], logger=logger)


BACKENDS: Dict[StorageBackend, Callable[[Dict[str, str], object], AccountStore]] = {
    StorageBackend.file: _file,
    StorageBackend.sql: _sql,
}


def open_account_store(storage: StorageConfig, paths: Dict[str, str], *, logger=None) -> AccountStore:
    """Build the configured backend; `paths` comes from ConfigManager.open_paths()."""
    return BACKENDS[storage.backend](paths, logger)

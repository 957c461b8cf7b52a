from __future__ import annotations

import os
import sqlite3
from typing import List, Sequence

from droptidy.core.config.io import atomic_write_json, ensure_dirs
from droptidy.core.errors import StorageError
from droptidy.core.identity.models import Account
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger


_COLUMNS = ("username", "password", "role", "failed_login_attempts", "locked_until", "status", "last_login", "created_at")


class SqlAccountStore(AccountStore):
    """
    Relational backend with the same contract as the file store.

    Schema mirrors the record: username primary key plus one column per field.
    Writes replace the whole table inside one transaction.
    """

    backend_id = "sql"

    def __init__(self, *, path: str, logger=None):
        self.path = path
        self.logger = logger or component_logger("identity")
        ensure_dirs(os.path.dirname(path))
        self._init()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _init(self) -> None:
        try:
            conn = self._conn()
            try:
                with conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS users (
                          username TEXT PRIMARY KEY,
                          password TEXT NOT NULL,
                          role TEXT NOT NULL,
                          failed_login_attempts INTEGER NOT NULL DEFAULT 0,
                          locked_until REAL,
                          status TEXT,
                          last_login TEXT,
                          created_at TEXT
                        )
                        """
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(path=self.path, error=str(e)) from e

    def _fetch_rows(self) -> List[dict]:
        try:
            conn = self._conn()
            try:
                cur = conn.execute(f"SELECT {', '.join(_COLUMNS)} FROM users ORDER BY rowid")
                return [dict(r) for r in cur.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            self.logger.error(f"Unable to read accounts from {self.path}: {e}")
            raise StorageError(path=self.path, error=str(e)) from e

    def _load(self) -> List[Account]:
        return [Account.model_validate(r) for r in self._fetch_rows()]

    def _save(self, accounts: Sequence[Account]) -> None:
        rows = [tuple(a.model_dump(mode="json")[c] for c in _COLUMNS) for a in accounts]
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            conn = self._conn()
            try:
                with conn:
                    conn.execute("DELETE FROM users")
                    conn.executemany(f"INSERT INTO users ({', '.join(_COLUMNS)}) VALUES ({placeholders})", rows)
            finally:
                conn.close()
        except sqlite3.Error as e:
            self.logger.error(f"Unable to write accounts to {self.path}: {e}")
            raise StorageError(path=self.path, error=str(e)) from e

    def snapshot_to(self, path: str) -> bool:
        accounts = self._load()
        if not accounts:
            return False
        try:
            atomic_write_json(path, [a.model_dump(mode="json") for a in accounts])
        except OSError as e:
            self.logger.error(f"Unable to write snapshot {path}: {e}")
            raise StorageError(path=path, error=str(e)) from e
        return True

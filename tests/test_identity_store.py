from __future__ import annotations

import json
import os
import sqlite3

import pytest

from droptidy.core.config.models import StorageBackend, StorageConfig
from droptidy.core.errors import AccountNotFoundError, DuplicateUsernameError, LastAdminError, StorageError
from droptidy.core.identity.factory import open_account_store
from droptidy.core.identity.models import AccountRole, AccountStatus, AccountUpdate
from droptidy.core.identity.store_json import JsonFileAccountStore
from droptidy.core.identity.store_sqlite import SqlAccountStore

from .helpers.accounts import ADMIN_PW, make_account


def test_create_find_list_count(store):
    assert store.list() == []
    store.create(make_account("root", ADMIN_PW, AccountRole.admin))
    store.create(make_account("alice"))
    assert store.count() == 2
    assert [a.username for a in store.list()] == ["root", "alice"]
    found = store.find("alice")
    assert found is not None and found.role == AccountRole.user
    assert store.find("nobody") is None


def test_duplicate_username_rejected(store):
    store.create(make_account("alice"))
    with pytest.raises(DuplicateUsernameError):
        store.create(make_account("alice"))
    assert store.count() == 1


def test_update_applies_only_set_fields(store):
    store.create(make_account("alice", failed_login_attempts=2, status=AccountStatus.active))
    updated = store.update("alice", AccountUpdate(locked_until=123.5))
    assert updated.locked_until == 123.5
    assert updated.failed_login_attempts == 2
    assert updated.status == AccountStatus.active
    again = store.find("alice")
    assert again == updated


def test_update_accepts_dict_and_unknown_user_raises(store):
    store.create(make_account("alice"))
    store.update("alice", {"failed_login_attempts": 4})
    assert store.find("alice").failed_login_attempts == 4
    with pytest.raises(AccountNotFoundError):
        store.update("ghost", {"failed_login_attempts": 1})


def test_last_admin_cannot_be_deleted_or_demoted(store):
    store.create(make_account("root", ADMIN_PW, AccountRole.admin))
    with pytest.raises(LastAdminError):
        store.delete("root")
    with pytest.raises(LastAdminError):
        store.update("root", AccountUpdate(role=AccountRole.user))
    assert store.find("root").role == AccountRole.admin


def test_non_last_admin_can_be_deleted(store):
    store.create(make_account("root", ADMIN_PW, AccountRole.admin))
    store.create(make_account("ops", ADMIN_PW, AccountRole.admin))
    removed = store.delete("ops")
    assert removed.username == "ops"
    assert store.find("ops") is None


def test_delete_unknown_raises(store):
    with pytest.raises(AccountNotFoundError):
        store.delete("ghost")


def test_replace_all_and_snapshot(store, tmp_path):
    store.create(make_account("alice"))
    store.replace_all([make_account("root", ADMIN_PW, AccountRole.admin), make_account("bob")])
    assert [a.username for a in store.list()] == ["root", "bob"]

    out = str(tmp_path / "snap" / "copy.json")
    assert store.snapshot_to(out) is True
    with open(out, "r", encoding="utf-8") as f:
        rows = json.load(f)
    assert [r["username"] for r in rows] == ["root", "bob"]


def test_snapshot_of_empty_directory_writes_nothing(store, tmp_path):
    out = str(tmp_path / "snap" / "copy.json")
    assert store.snapshot_to(out) is False
    assert not os.path.exists(out)


def test_corrupt_json_file_raises_storage_error(tmp_path, logger):
    path = tmp_path / "users.json"
    path.write_text("{not json", encoding="utf-8")
    st = JsonFileAccountStore(path=str(path), logger=logger)
    with pytest.raises(StorageError):
        st.list()
    assert logger.messages("error")


def test_malformed_record_raises_storage_error(tmp_path, logger):
    path = tmp_path / "users.json"
    path.write_text(json.dumps([{"username": "x"}]), encoding="utf-8")
    st = JsonFileAccountStore(path=str(path), logger=logger)
    with pytest.raises(StorageError):
        st.list()


def test_sql_store_survives_reopen(tmp_path, logger):
    p = str(tmp_path / "d.sqlite")
    SqlAccountStore(path=p, logger=logger).create(make_account("alice", locked_until=99.0))
    again = SqlAccountStore(path=p, logger=logger).find("alice")
    assert again is not None
    assert again.locked_until == 99.0
    with sqlite3.connect(p) as conn:
        assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 1


def test_factory_selects_backend(tmp_path):
    paths = {"users_file": str(tmp_path / "u.json"), "sql_path": str(tmp_path / "u.sqlite")}
    assert open_account_store(StorageConfig(backend=StorageBackend.file), paths).backend_id == "file"
    assert open_account_store(StorageConfig(backend=StorageBackend.sql), paths).backend_id == "sql"


def test_admin_flag_follows_role():
    assert make_account("root", ADMIN_PW, AccountRole.admin).is_admin is True
    assert make_account("alice").is_admin is False

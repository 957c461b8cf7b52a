from __future__ import annotations

import os
import time
from typing import Optional

import pytest

from droptidy.core.audit.log import AuditLog
from droptidy.core.auth.engine import AuthenticationEngine
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.manager import BACKEND_ENV, ConfigManager
from droptidy.core.config.models import BackupConfig, SecurityConfig
from droptidy.core.config.paths import ConfigFsPaths
from droptidy.core.error_reporter import ErrorReporter
from droptidy.core.identity.store_json import JsonFileAccountStore
from droptidy.core.identity.store_sqlite import SqlAccountStore
from droptidy.core.reset.manager import PasswordResetManager
from droptidy.core.service import AccountService
from droptidy.core.transfer.engine import TransferEngine

from .helpers.accounts import ADMIN_PW, USER_PW
from .helpers.fakes import DummyLogger, FakeClock

@pytest.fixture(autouse=True)
def _no_backend_env(monkeypatch):
    monkeypatch.delenv(BACKEND_ENV, raising=False)


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated root with config/ and data/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    os.makedirs(os.path.join(fs.root, "data"), exist_ok=True)
    return fs


@pytest.fixture
def config_manager(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger(), read_only=False)
    cm.load_all()
    return cm


@pytest.fixture
def clock(monkeypatch):
    c = FakeClock()
    monkeypatch.setattr(time, "time", c.time)
    return c


@pytest.fixture
def logger():
    return DummyLogger()


@pytest.fixture(params=["file", "sql"])
def store(request, tmp_path, logger):
    if request.param == "file":
        return JsonFileAccountStore(path=str(tmp_path / "data" / "users.json"), logger=logger)
    return SqlAccountStore(path=str(tmp_path / "data" / "droptidy.sqlite"), logger=logger)


@pytest.fixture
def file_store(tmp_path, logger):
    return JsonFileAccountStore(path=str(tmp_path / "data" / "users.json"), logger=logger)


@pytest.fixture
def audit(tmp_path, logger):
    return AuditLog(path=str(tmp_path / "data" / "audit_log.json"), logger=logger)


@pytest.fixture
def backups_dir(tmp_path):
    return str(tmp_path / "data" / "backups")


@pytest.fixture
def backups(file_store, backups_dir, audit, logger):
    return BackupManager(store=file_store, backups_dir=backups_dir, cfg=BackupConfig(), audit=audit, logger=logger)


@pytest.fixture
def make_service(tmp_path, audit, backups_dir, logger):
    """
    Factory for a fully wired AccountService over a chosen store (file by default).
    """

    def build(store=None, *, security: Optional[SecurityConfig] = None, backup: Optional[BackupConfig] = None) -> AccountService:
        st = store or JsonFileAccountStore(path=str(tmp_path / "data" / "users.json"), logger=logger)
        sec = security or SecurityConfig()
        bm = BackupManager(store=st, backups_dir=backups_dir, cfg=backup or BackupConfig(), audit=audit, logger=logger)
        return AccountService(
            store=st,
            audit=audit,
            backups=bm,
            auth=AuthenticationEngine(store=st, audit=audit, cfg=sec, logger=logger),
            resets=PasswordResetManager(store=st, audit=audit, backups=bm, cfg=sec, logger=logger),
            transfer=TransferEngine(store=st, backups=bm, audit=audit, logger=logger),
            error_reporter=ErrorReporter(path=str(tmp_path / "logs" / "errors.jsonl")),
            logger=logger,
        )

    return build


@pytest.fixture
def service(make_service):
    """Service with `root` (admin, first account) and `alice` (user), signed out."""
    svc = make_service()
    assert svc.register("root", ADMIN_PW).success
    assert svc.register("alice", USER_PW).success
    return svc

from __future__ import annotations

import json
import os

import pytest

from droptidy.core.audit.models import AuditAction
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.models import BackupConfig
from droptidy.core.errors import ValidationError
from droptidy.core.identity.models import AccountRole

from .helpers.accounts import ADMIN_PW, make_account


@pytest.fixture
def seeded(file_store):
    file_store.create(make_account("root", ADMIN_PW, AccountRole.admin))
    file_store.create(make_account("alice"))
    return file_store


def test_snapshot_is_verbatim_copy(seeded, backups):
    snap = backups.snapshot("user_update")
    assert snap is not None
    assert snap.category == "user_update"
    name = os.path.basename(snap.path)
    assert name.startswith("users-backup-user_update-") and name.endswith(".json")
    with open(snap.path, "r", encoding="utf-8") as f:
        copied = json.load(f)
    with open(seeded.path, "r", encoding="utf-8") as f:
        assert copied == json.load(f)


def test_empty_directory_is_skipped(file_store, backups):
    assert backups.snapshot("import") is None
    assert backups.list_snapshots() == []


def test_disabled_backups_skip(seeded, backups_dir, audit, logger):
    mgr = BackupManager(store=seeded, backups_dir=backups_dir, cfg=BackupConfig(enabled=False), audit=audit, logger=logger)
    assert mgr.snapshot("import") is None


def test_invalid_category_rejected(seeded, backups):
    with pytest.raises(ValidationError):
        backups.snapshot("../escape")


def test_rotation_keeps_max_per_category(seeded, backups_dir, audit, logger, clock):
    mgr = BackupManager(store=seeded, backups_dir=backups_dir, cfg=BackupConfig(max_per_category=3), audit=audit, logger=logger)
    made = []
    for _ in range(7):
        clock.advance(1)
        made.append(mgr.snapshot("import").path)
    mgr.snapshot("user_deletion")

    kept = mgr.list_snapshots("import")
    assert len(kept) == 3
    assert [s.path for s in kept] == list(reversed(made[-3:]))
    assert len(mgr.list_snapshots("user_deletion")) == 1
    assert len(os.listdir(backups_dir)) == 4


def test_default_retention_is_ten(seeded, backups, clock):
    for _ in range(15):
        clock.advance(1)
        backups.snapshot("user_update")
    assert len(backups.list_snapshots("user_update")) == 10


def test_standalone_snapshot_is_audited(seeded, backups, audit):
    backups.snapshot("user_update")
    assert audit.list(action=AuditAction.backup_created) == []
    snap = backups.snapshot("manual", record_audit=True, performed_by="root")
    entries = audit.list(action=AuditAction.backup_created)
    assert len(entries) == 1
    assert entries[0].details == {"operation_type": "manual", "backup_path": snap.path}


def test_restore_replaces_directory(seeded, backups, audit, clock):
    snap = backups.snapshot("manual")
    clock.advance(1)
    seeded.create(make_account("mallory"))
    assert seeded.count() == 3

    n = backups.restore(snap.path, performed_by="root")
    assert n == 2
    assert [a.username for a in seeded.list()] == ["root", "alice"]
    assert len(backups.list_snapshots("pre_restore")) == 1
    entry = audit.list(action=AuditAction.backup_restored)[-1]
    assert entry.details["record_count"] == 2


def test_restore_rejects_file_without_admin(seeded, backups, tmp_path):
    bad = tmp_path / "no_admin.json"
    bad.write_text(json.dumps([make_account("alice").model_dump(mode="json")]), encoding="utf-8")
    with pytest.raises(ValidationError):
        backups.restore(str(bad))
    assert seeded.count() == 2


def test_restore_rejects_missing_file(seeded, backups, tmp_path):
    with pytest.raises(ValidationError):
        backups.restore(str(tmp_path / "missing.json"))

from __future__ import annotations

import pytest

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction
from droptidy.core.errors import StorageError

from .helpers.log_assertions import assert_no_secret_leak, read_json_list


def test_append_and_list_in_order(audit):
    audit.append(AuditAction.register, "alice", None, {"role": "user"})
    audit.append(AuditAction.delete, "bob", "root", {"outcome": "success"})
    entries = audit.list()
    assert [e.action for e in entries] == ["register", "delete"]
    assert entries[1].performed_by == "root"
    assert entries[0].timestamp
    assert audit.count() == 2


def test_filters_and_limit(audit):
    for name in ("a1", "a2", "a3"):
        audit.append(AuditAction.register, name)
    audit.append(AuditAction.login, "a1", "a1")
    assert [e.username for e in audit.list(action=AuditAction.register)] == ["a1", "a2", "a3"]
    assert [e.action for e in audit.list(username="a1")] == ["register", "login"]
    assert [e.username for e in audit.list(limit=2)] == ["a3", "a1"]
    assert audit.list(limit=0) == []


def test_details_are_redacted_on_disk(audit):
    audit.append(AuditAction.update, "alice", "root", {"password": "S3cret!pw", "role": "admin"})
    rows = read_json_list(audit.path)
    assert_no_secret_leak(rows, "S3cret!pw")
    assert rows[0]["details"]["role"] == "admin"


def test_persists_across_instances(audit, logger):
    audit.append(AuditAction.export_users, "all", "root", {"record_count": 2})
    again = AuditLog(path=audit.path, logger=logger)
    assert again.list()[0].details == {"record_count": 2}


def test_unreadable_log_is_not_overwritten(tmp_path, logger):
    path = tmp_path / "audit.json"
    path.write_text("[{broken", encoding="utf-8")
    log = AuditLog(path=str(path), logger=logger)
    with pytest.raises(StorageError):
        log.append(AuditAction.login, "alice")
    assert path.read_text(encoding="utf-8") == "[{broken"

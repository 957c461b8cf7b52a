from __future__ import annotations

import json

from droptidy.core.error_reporter import ErrorReporter, ErrorReporterConfig
from droptidy.core.errors import AccountLockedError, DropTidyError, LastAdminError

from .helpers.log_assertions import read_jsonl


def test_unknown_exception_normalized_and_redacted(tmp_path):
    p = tmp_path / "errors.jsonl"
    r = ErrorReporter(path=str(p))
    try:
        raise RuntimeError("boom")
    except Exception as e:  # noqa: BLE001
        err = r.report_exception(e, operation="register", context={"password": "S3cret!pw", "x": 1})
        assert err.code == "unknown_error"
        assert err.user_message
    obj = read_jsonl(str(p))[-1]
    assert obj["operation"] == "register"
    assert obj["exception_type"] == "RuntimeError"
    assert "S3cret!pw" not in json.dumps(obj)
    assert "***REDACTED***" in json.dumps(obj)
    assert "traceback" not in obj


def test_domain_errors_pass_through(tmp_path):
    r = ErrorReporter(path=str(tmp_path / "e.jsonl"))
    original = LastAdminError(username="root")
    assert r.report_exception(original, operation="delete_account") is original


def test_os_error_becomes_storage_error(tmp_path):
    r = ErrorReporter(path=str(tmp_path / "e.jsonl"), cfg=ErrorReporterConfig(include_tracebacks=True))
    err = r.report_exception(PermissionError("denied"), operation="export_accounts")
    assert err.code == "storage_error"
    row = r.tail(1)[0]
    assert row["error_code"] == "storage_error"
    assert "PermissionError" in row["traceback"]


def test_error_to_dict_redacts_context():
    err = DropTidyError(code="x", user_message="nope", context={"token": "abc", "user": "bob"})
    d = err.to_dict()
    assert d["context"] == {"token": "***REDACTED***", "user": "bob"}
    assert str(err) == "nope"


def test_locked_error_carries_retry_after():
    err = AccountLockedError("locked", retry_after_seconds=90, username="alice")
    assert err.retry_after_seconds == 90.0
    assert err.context == {"username": "alice"}

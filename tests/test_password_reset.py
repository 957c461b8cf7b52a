from __future__ import annotations

import pytest

from droptidy.core.audit.models import AuditAction
from droptidy.core.config.models import SecurityConfig
from droptidy.core.errors import ResetCodeInvalidError, ValidationError
from droptidy.core.identity.models import AccountRole
from droptidy.core.reset.manager import CODE_ALPHABET, PasswordResetManager

from .helpers.accounts import ADMIN_PW, make_account
from .helpers.log_assertions import read_json_list

NEW_PW = "N3w!secret"


@pytest.fixture
def resets(file_store, audit, backups, logger):
    file_store.create(make_account("root", ADMIN_PW, AccountRole.admin))
    file_store.create(make_account("alice", failed_login_attempts=3, locked_until=10.0))
    return PasswordResetManager(store=file_store, audit=audit, backups=backups, cfg=SecurityConfig(), logger=logger)


def test_code_shape(resets, clock):
    code = resets.initiate("alice")
    assert code is not None
    assert len(code) == 8
    assert all(c in CODE_ALPHABET for c in code)
    assert resets.pending() == 1


def test_unknown_user_gets_no_code(resets, audit, clock):
    assert resets.initiate("ghost") is None
    assert resets.pending() == 0
    assert audit.list(action=AuditAction.password_reset_initiated) == []


def test_complete_sets_password_and_clears_lockout(resets, file_store, audit, backups, clock):
    code = resets.initiate("alice")
    resets.complete("alice", code, NEW_PW)

    acc = file_store.find("alice")
    assert acc.password == NEW_PW
    assert acc.failed_login_attempts == 0
    assert acc.locked_until is None

    done = audit.list(action=AuditAction.password_reset_completed)
    assert len(done) == 1
    assert done[0].details["backup"] == backups.list_snapshots("password_reset")[0].path


def test_code_is_single_use(resets, clock):
    code = resets.initiate("alice")
    resets.complete("alice", code, NEW_PW)
    with pytest.raises(ResetCodeInvalidError) as ei:
        resets.complete("alice", code, "An0ther!pw")
    assert ei.value.user_message == "Invalid or expired reset code"


def test_expired_code_rejected(resets, file_store, clock):
    code = resets.initiate("alice")
    clock.advance(30 * 60)
    with pytest.raises(ResetCodeInvalidError):
        resets.complete("alice", code, NEW_PW)
    assert file_store.find("alice").password != NEW_PW
    assert resets.pending() == 0


def test_code_still_valid_just_before_expiry(resets, clock):
    code = resets.initiate("alice")
    clock.advance(30 * 60 - 1)
    resets.complete("alice", code, NEW_PW)


def test_wrong_code_or_wrong_user_rejected(resets, clock):
    code = resets.initiate("alice")
    with pytest.raises(ResetCodeInvalidError):
        resets.complete("alice", "WRONG123", NEW_PW)
    with pytest.raises(ResetCodeInvalidError):
        resets.complete("root", code, NEW_PW)
    # still usable by its owner
    resets.complete("alice", code, NEW_PW)


def test_new_code_replaces_old(resets, clock):
    first = resets.initiate("alice")
    second = resets.initiate("alice")
    assert resets.pending() == 1
    if first != second:
        with pytest.raises(ResetCodeInvalidError):
            resets.complete("alice", first, NEW_PW)
    resets.complete("alice", second, NEW_PW)


def test_weak_password_keeps_code_usable(resets, clock):
    code = resets.initiate("alice")
    with pytest.raises(ValidationError):
        resets.complete("alice", code, "weak")
    resets.complete("alice", code, NEW_PW)


def test_code_never_reaches_audit_file(resets, audit, clock):
    code = resets.initiate("alice")
    resets.complete("alice", code, NEW_PW)
    blob = str(read_json_list(audit.path))
    assert code not in blob
    assert NEW_PW not in blob

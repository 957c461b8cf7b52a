from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction
from droptidy.core.backup.manager import BackupManager
from droptidy.core.config.io import atomic_write_json, read_json_file
from droptidy.core.errors import DropTidyError, StorageError, ValidationError
from droptidy.core.identity.models import Account, AccountRole, count_admins
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger
from droptidy.core.transfer.models import ExportBundle, ExportMetadata, ImportedAccount, ImportMode, ImportSummary

ImportSource = Union[str, os.PathLike, Dict[str, Any], ExportBundle]

_ROLES = {r.value for r in AccountRole}


def source_label(source: Any) -> str:
    if isinstance(source, (dict, ExportBundle)):
        return "direct_data"
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    return type(source).__name__


def validate_records(raw: Any) -> List[Account]:
    """
    Check an incoming `users` payload before anything is written.
    The first bad record aborts the whole import.
    """
    if not isinstance(raw, list):
        raise ValidationError("Invalid import file format")
    seen = set()
    out: List[Account] = []
    for i, rec in enumerate(raw):
        if not isinstance(rec, dict):
            raise ValidationError(f"Invalid user data in import file (record {i})")
        username = rec.get("username")
        if not isinstance(username, str) or not username:
            raise ValidationError(f"Invalid user data in import file (record {i}: missing username)")
        password = rec.get("password")
        if not isinstance(password, str) or not password:
            raise ValidationError(f"Invalid user data in import file (record {i}: missing password)", username=username)
        if rec.get("role") not in _ROLES:
            raise ValidationError(f"Invalid role for user {username}", username=username)
        if username in seen:
            raise ValidationError(f"Duplicate username in import file: {username}", username=username)
        seen.add(username)
        try:
            out.append(ImportedAccount.model_validate(rec).to_account())
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid user data in import file for {username}", username=username) from e
    return out


def merge_accounts(existing: List[Account], incoming: List[Account]) -> Tuple[List[Account], int, int]:
    """
    Overwrite same-username records in place, append the rest.
    Returns (result, imported_count, updated_count).
    """
    result = list(existing)
    index = {a.username: i for i, a in enumerate(result)}
    imported = updated = 0
    for acc in incoming:
        pos = index.get(acc.username)
        if pos is None:
            index[acc.username] = len(result)
            result.append(acc)
            imported += 1
        else:
            result[pos] = acc
            updated += 1
    return result, imported, updated


class TransferEngine:
    """Bulk export and import (replace/merge) of the account directory."""

    def __init__(self, *, store: AccountStore, backups: BackupManager, audit: Optional[AuditLog] = None, logger=None):
        self.store = store
        self.backups = backups
        self.audit = audit
        self.logger = logger or component_logger("transfer")

    # ---- export ----
    def build_bundle(self) -> ExportBundle:
        users = self.store.list()
        meta = ExportMetadata(record_count=len(users), backend_identifier=self.store.backend_id)
        return ExportBundle(metadata=meta, users=users)

    def export(self, destination: Optional[str] = None, *, performed_by: Optional[str] = None) -> ExportBundle:
        snap = self.backups.snapshot("export")
        bundle = self.build_bundle()
        if destination:
            try:
                atomic_write_json(str(destination), bundle.to_json_obj())
            except OSError as e:
                self.logger.error(f"Unable to write export to {destination}: {e}")
                raise StorageError("Failed to export user data.", path=str(destination), error=str(e)) from e
            self.logger.info(f"Exported {bundle.metadata.record_count} account(s) to {destination}")
            if self.audit is not None:
                self.audit.append(AuditAction.export_users, "all", performed_by, {"export_path": str(destination), "record_count": bundle.metadata.record_count, "backup": snap.path if snap else None})
        return bundle

    # ---- import ----
    def import_accounts(self, source: ImportSource, mode: Union[ImportMode, str] = ImportMode.merge, *, performed_by: Optional[str] = None) -> ImportSummary:
        """
        Snapshot, validate the whole payload, then write the directory once.

        Exactly one `import_users` audit entry is appended per call, with
        details.outcome = success | failed.
        """
        label = source_label(source)
        snap = None
        try:
            # recovery point before anything else, whatever the payload turns out to be
            snap = self.backups.snapshot("import")

            try:
                mode = ImportMode(mode)
            except ValueError as e:
                raise ValidationError("Import mode must be 'replace' or 'merge'.", mode=str(mode)) from e

            payload = self._read_source(source)
            incoming = validate_records(payload.get("users"))

            if mode == ImportMode.replace:
                result, imported, updated = list(incoming), len(incoming), 0
            else:
                result, imported, updated = merge_accounts(self.store.list(), incoming)

            if count_admins(result) < 1:
                raise ValidationError("Import would leave no administrator account.")

            self.store.replace_all(result)
        except DropTidyError as e:
            self.logger.warning(f"Import from {label} rejected: {e.user_message}")
            self._audit_import(label, mode, 0, 0, snap, performed_by, outcome="failed", error=e.code)
            raise

        summary = ImportSummary(
            mode=mode,
            source=label,
            imported_count=imported,
            updated_count=updated,
            backup=snap.path if snap else None,
        )
        self.logger.info(f"Import ({mode.value}) from {label}: {imported} added, {updated} updated")
        self._audit_import(label, mode, imported, updated, snap, performed_by, outcome="success")
        return summary

    def _audit_import(self, label, mode, imported, updated, snap, performed_by, *, outcome: str, error: Optional[str] = None) -> None:  # noqa: ANN001
        if self.audit is None:
            return
        details: Dict[str, Any] = {
            "import_source": label,
            "mode": getattr(mode, "value", str(mode)),
            "imported_count": imported,
            "updated_count": updated,
            "backup": snap.path if snap else None,
            "outcome": outcome,
        }
        if error:
            details["error"] = error
        self.audit.append(AuditAction.import_users, "all", performed_by, details)

    def _read_source(self, source: ImportSource) -> Dict[str, Any]:
        if isinstance(source, ExportBundle):
            return source.to_json_obj()
        if isinstance(source, dict):
            return source
        if not isinstance(source, (str, os.PathLike)):
            raise ValidationError("Import source must be a file path or an export bundle.")
        path = os.fspath(source)
        rr = read_json_file(path)
        if rr.ok:
            return rr.data
        if rr.error == "missing":
            raise ValidationError("Import file does not exist", path=path)
        raise ValidationError("Invalid import file format", path=path, error=rr.error)

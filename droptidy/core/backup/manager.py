from __future__ import annotations

import os
import re
import time
import uuid
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from droptidy.core.audit.log import AuditLog
from droptidy.core.audit.models import AuditAction
from droptidy.core.backup.models import BackupSnapshot
from droptidy.core.config.io import ensure_dirs, read_json_file
from droptidy.core.config.models import BackupConfig
from droptidy.core.errors import StorageError, ValidationError
from droptidy.core.identity.models import Account, count_admins
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger


_CATEGORY_RE = re.compile(r"^[a-z0-9_]+$")
_NAME_RE = re.compile(r"^users-backup-(?P<category>[a-z0-9_]+)-(?P<stamp>\d{8}T\d{12})Z-(?P<sid>[0-9a-f]{8})\.json$")


def _stamp(now: float) -> str:
    micros = int(round((now - int(now)) * 1_000_000)) % 1_000_000
    return time.strftime("%Y%m%dT%H%M%S", time.gmtime(now)) + f"{micros:06d}"


def _iso_from_stamp(stamp: str) -> str:
    return f"{stamp[0:4]}-{stamp[4:6]}-{stamp[6:8]}T{stamp[9:11]}:{stamp[11:13]}:{stamp[13:15]}.{stamp[15:21]}Z"


class BackupManager:
    """
    Point-in-time copies of the account directory, one JSON file per snapshot:

        <backups_dir>/users-backup-<category>-<UTC stamp>Z-<id>.json

    At most `max_per_category` snapshots are kept per category; the oldest are
    removed right after each new snapshot.
    """

    def __init__(self, *, store: AccountStore, backups_dir: str, cfg: Optional[BackupConfig] = None, audit: Optional[AuditLog] = None, logger=None):
        self.store = store
        self.backups_dir = backups_dir
        self.cfg = cfg or BackupConfig()
        self.audit = audit
        self.logger = logger or component_logger("backup")

    def snapshot(self, category: str, *, record_audit: bool = False, performed_by: Optional[str] = None) -> Optional[BackupSnapshot]:
        """
        Copy the current directory aside before a mutation.

        Returns None without raising when backups are disabled or the directory
        is empty (nothing to protect). With record_audit=True a `backup_created`
        entry is appended; callers that audit the surrounding operation fold the
        snapshot path into their own entry instead.
        """
        if not _CATEGORY_RE.match(category or ""):
            raise ValidationError(f"Invalid backup category: {category!r}")
        if not self.cfg.enabled:
            return None

        now = time.time()
        stamp = _stamp(now)
        name = f"users-backup-{category}-{stamp}Z-{uuid.uuid4().hex[:8]}.json"
        path = os.path.join(self.backups_dir, name)
        ensure_dirs(self.backups_dir)
        if not self.store.snapshot_to(path):
            self.logger.warning(f"Backup skipped ({category}): account directory is empty")
            return None

        snap = BackupSnapshot(timestamp=_iso_from_stamp(stamp), category=category, path=path)
        removed = self._rotate(category)
        self.logger.info(f"Backup created ({category}): {name}; rotated {len(removed)}")
        if record_audit and self.audit is not None:
            self.audit.append(
                AuditAction.backup_created,
                "system",
                performed_by,
                {"operation_type": category, "backup_path": path},
            )
        return snap

    def list_snapshots(self, category: Optional[str] = None) -> List[BackupSnapshot]:
        """Newest first."""
        out: List[Tuple[Tuple[str, int], BackupSnapshot]] = []
        if not os.path.isdir(self.backups_dir):
            return []
        for fname in os.listdir(self.backups_dir):
            m = _NAME_RE.match(fname)
            if not m:
                continue
            if category is not None and m.group("category") != category:
                continue
            path = os.path.join(self.backups_dir, fname)
            try:
                mtime = os.stat(path).st_mtime_ns
            except OSError:
                continue
            snap = BackupSnapshot(timestamp=_iso_from_stamp(m.group("stamp")), category=m.group("category"), path=path)
            out.append(((m.group("stamp"), mtime), snap))
        out.sort(key=lambda t: t[0], reverse=True)
        return [s for _, s in out]

    def restore(self, path: str, *, performed_by: Optional[str] = None) -> int:
        """
        Replace the directory with the records of a snapshot file.

        A `pre_restore` snapshot is taken first. Returns the restored record count.
        """
        rr = read_json_file(path, expect=list)
        if not rr.ok:
            raise ValidationError("Backup file is missing or unreadable.", path=path, error=rr.error)
        try:
            accounts = [Account.model_validate(x) for x in rr.data]
        except PydanticValidationError as e:
            raise ValidationError("Backup file holds malformed account records.", path=path) from e
        if not accounts or count_admins(accounts) < 1:
            raise ValidationError("Backup file has no administrator account.", path=path)

        pre = self.snapshot("pre_restore")
        self.store.replace_all(accounts)
        self.logger.warning(f"Account directory restored from {os.path.basename(path)} ({len(accounts)} records)")
        if self.audit is not None:
            self.audit.append(
                AuditAction.backup_restored,
                "all",
                performed_by,
                {"backup_path": path, "record_count": len(accounts), "backup": pre.path if pre else None},
            )
        return len(accounts)

    # ---- helpers ----
    def _rotate(self, category: str) -> List[str]:
        removed: List[str] = []
        for snap in self.list_snapshots(category)[int(self.cfg.max_per_category) :]:
            try:
                os.remove(snap.path)
                removed.append(snap.path)
            except OSError as e:
                self.logger.error(f"Unable to remove old backup {snap.path}: {e}")
                raise StorageError(path=snap.path, error=str(e)) from e
        return removed

from __future__ import annotations

import os
import threading
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from droptidy.core.audit.models import AuditEntry
from droptidy.core.config.io import atomic_write_json, ensure_dirs, read_json_file
from droptidy.core.errors import StorageError
from droptidy.core.logger import component_logger
from droptidy.core.redaction import redact


class AuditLog:
    """
    Append-only record of administrative mutations, kept as one JSON list.

    append() loads the existing list, adds the entry and rewrites the file.
    Entries are never edited or removed individually.
    """

    def __init__(self, *, path: str, logger=None):
        self.path = path
        self.logger = logger or component_logger("audit")
        self._lock = threading.Lock()
        ensure_dirs(os.path.dirname(path))

    def _read(self) -> List[Dict[str, Any]]:
        rr = read_json_file(self.path, expect=list)
        if rr.ok or rr.error == "missing":
            return list(rr.data)
        # An unreadable log must not be silently overwritten.
        self.logger.error(f"Audit log {self.path} unreadable: {rr.error}")
        raise StorageError("Audit log is unreadable.", path=self.path, error=rr.error)

    def append(
        self,
        action: str,
        username: str,
        performed_by: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(action=action, username=username, performed_by=performed_by, details=redact(details or {}))
        with self._lock:
            rows = self._read()
            rows.append(entry.model_dump(mode="json"))
            try:
                atomic_write_json(self.path, rows)
            except OSError as e:
                self.logger.error(f"Unable to write audit log {self.path}: {e}")
                raise StorageError(path=self.path, error=str(e)) from e
        return entry

    def list(self, *, action: Optional[str] = None, username: Optional[str] = None, limit: Optional[int] = None) -> List[AuditEntry]:
        out: List[AuditEntry] = []
        for row in self._read():
            try:
                e = AuditEntry.model_validate(row)
            except PydanticValidationError:
                continue
            if action and e.action != action:
                continue
            if username and e.username != username:
                continue
            out.append(e)
        if limit is not None:
            out = out[-max(0, int(limit)) :] if limit > 0 else []
        return out

    def count(self) -> int:
        return len(self._read())

from __future__ import annotations

import json
import os
import threading
import time
import traceback
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from droptidy.core.errors import DropTidyError, StorageError
from droptidy.core.redaction import redact


@dataclass
class ErrorReporterConfig:
    include_tracebacks: bool = False


class ErrorReporter:
    """
    Writes one JSON line per unexpected failure to logs/errors.jsonl.

    The command surface reports here before turning the failure into a generic
    result, so nothing about the cause crosses into the UI.
    """

    def __init__(self, *, path: str = os.path.join("logs", "errors.jsonl"), cfg: Optional[ErrorReporterConfig] = None):
        self.path = path
        self.cfg = cfg or ErrorReporterConfig()
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    def report_exception(self, exc: BaseException, *, operation: str, context: Optional[Dict[str, Any]] = None) -> DropTidyError:
        err = normalize_exception(exc, context=context or {})
        self.write_error(err, operation=operation, internal_exc=exc)
        return err

    def write_error(self, err: DropTidyError, *, operation: str, internal_exc: Optional[BaseException] = None) -> None:
        entry: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "operation": operation,
            "error_code": err.code,
            "severity": err.severity.value,
            "recoverable": bool(err.recoverable),
            "user_message": err.user_message,
            "safe_context": redact(err.context or {}),
        }
        if internal_exc is not None:
            entry["exception_type"] = type(internal_exc).__name__
            if self.cfg.include_tracebacks:
                entry["traceback"] = "".join(traceback.format_exception(type(internal_exc), internal_exc, internal_exc.__traceback__, limit=30))
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def tail(self, n: int = 20) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            lines = f.readlines()
        out: List[Dict[str, Any]] = []
        for line in lines[-max(1, int(n)) :]:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return out


def normalize_exception(exc: BaseException, *, context: Dict[str, Any]) -> DropTidyError:
    # Passthrough
    if isinstance(exc, DropTidyError):
        return exc
    ctx = dict(context or {})
    if isinstance(exc, OSError):
        return StorageError(error=str(exc), **ctx)
    # Generic safe error
    return DropTidyError(code="unknown_error", user_message="Something went wrong.", context=ctx)

from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Any
    error: Optional[str] = None


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        if d:
            os.makedirs(d, exist_ok=True)


def read_json_file(path: str, *, expect: type = dict) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data=expect(), error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        if not isinstance(obj, expect):
            return ReadResult(ok=False, data=expect(), error=f"not_{expect.__name__}")
        return ReadResult(ok=True, data=obj)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data=expect(), error=f"corrupt_json:{e}")
    except OSError as e:
        return ReadResult(ok=False, data=expect(), error=str(e))


def atomic_write_json(path: str, data: Any, *, sort_keys: bool = False) -> None:
    """
    Write to a temp file in the same directory, then os.replace() into place.
    A crash mid-write leaves the previous file intact.
    """
    ensure_dirs(os.path.dirname(path))
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=sort_keys)
            f.write("\n")
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def quarantine_corrupt(path: str, backups_dir: str) -> Optional[str]:
    """Move a corrupt file aside as backups/<name>.<ts>.corrupt.json."""
    if not os.path.exists(path):
        return None
    ensure_dirs(backups_dir)
    out = os.path.join(backups_dir, f"{os.path.basename(path)}.{_ts()}.corrupt.json")
    shutil.move(path, out)
    return out

from __future__ import annotations

import os
import shutil
from typing import List, Sequence

from pydantic import ValidationError as PydanticValidationError

from droptidy.core.config.io import atomic_write_json, ensure_dirs, read_json_file
from droptidy.core.errors import StorageError
from droptidy.core.identity.models import Account
from droptidy.core.identity.store import AccountStore
from droptidy.core.logger import component_logger


class JsonFileAccountStore(AccountStore):
    """Account directory kept as a JSON record list in a single local file."""

    backend_id = "file"

    def __init__(self, *, path: str, logger=None):
        self.path = path
        self.logger = logger or component_logger("identity")
        ensure_dirs(os.path.dirname(path))

    def _load(self) -> List[Account]:
        rr = read_json_file(self.path, expect=list)
        if not rr.ok:
            if rr.error == "missing":
                return []
            self.logger.error(f"Unable to read account directory {self.path}: {rr.error}")
            raise StorageError(path=self.path, error=rr.error)
        try:
            return [Account.model_validate(x) for x in rr.data]
        except PydanticValidationError as e:
            self.logger.error(f"Account directory {self.path} holds malformed records: {e.error_count()} error(s)")
            raise StorageError(path=self.path, error="malformed_record") from e

    def _save(self, accounts: Sequence[Account]) -> None:
        try:
            atomic_write_json(self.path, [a.model_dump(mode="json") for a in accounts])
        except OSError as e:
            self.logger.error(f"Unable to write account directory {self.path}: {e}")
            raise StorageError(path=self.path, error=str(e)) from e

    def snapshot_to(self, path: str) -> bool:
        rr = read_json_file(self.path, expect=list)
        if not rr.ok or not rr.data:
            return False
        ensure_dirs(os.path.dirname(path))
        try:
            shutil.copyfile(self.path, path)
        except OSError as e:
            self.logger.error(f"Unable to copy account directory to {path}: {e}")
            raise StorageError(path=path, error=str(e)) from e
        return True

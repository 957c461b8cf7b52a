from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BackupSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: str
    category: str
    path: str

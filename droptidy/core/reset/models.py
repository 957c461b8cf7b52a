from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ResetToken(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    username: str
    code: str
    expires_at: float

    def is_live(self, now: float) -> bool:
        return self.expires_at > now

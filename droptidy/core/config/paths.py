from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    def config_file(self, name: str) -> str:
        return os.path.join(self.config_dir, name)

    def resolve(self, path: str) -> str:
        """Relative data paths from config are anchored at the root."""
        if os.path.isabs(path):
            return path
        return os.path.join(self.root, path)

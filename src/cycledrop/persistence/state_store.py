"""State store — JSON snapshot of program config and distributor state.

Writes go to a temporary sibling file that then replaces the target,
so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from cycledrop.models.program import ProgramConfig
from cycledrop.models.state import DistributorState

logger = logging.getLogger("cycledrop.persistence.state_store")

STATE_VERSION = 1


class StateStore:
    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(self, config: ProgramConfig, state: DistributorState) -> None:
        """Persist a snapshot. Raises OSError on write failure."""
        document = {
            "version": STATE_VERSION,
            "config": config.to_dict(),
            "state": state.to_dict(),
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self._storage_path)

    def load(self) -> tuple[Optional[ProgramConfig], DistributorState]:
        """Load the snapshot, or (None, empty state) if none exists."""
        if not self._storage_path.exists():
            return None, DistributorState()
        data = json.loads(self._storage_path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state snapshot version: {version}")
        config = ProgramConfig.from_dict(data["config"])
        state = DistributorState.from_dict(data["state"])
        logger.debug(
            f"Loaded state from {self._storage_path}: "
            f"{len(state.roots)} roots, total claimed {state.total_claimed}"
        )
        return config, state

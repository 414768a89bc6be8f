# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/app/phase.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Phase(Enum):
    PREFLIGHT = "Preflight"
    SECRETS = "Secrets"
    FEATURES = "Features"
    CONFIRM = "Confirm"
    PULL = "Pull Images"
    DEPLOY = "Deploy"
    HEALTH = "Health Check"
    COMPLETE = "Complete"

    @property
    def index(self) -> int:
        return _ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value

    @staticmethod
    def total() -> int:
        return len(_ORDER)

    def next(self) -> Optional["Phase"]:
        """Fixed successor, None for COMPLETE."""
        i = self.index
        if i + 1 >= len(_ORDER):
            return None
        return _ORDER[i + 1]


_ORDER = list(Phase)


class ItemState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StatusRow:
    """One row of a per-phase status table (image pull, deploy step, preflight check)."""
    name: str
    state: ItemState = ItemState.PENDING
    detail: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state in (ItemState.DONE, ItemState.FAILED, ItemState.SKIPPED)

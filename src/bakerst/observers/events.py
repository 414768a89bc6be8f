# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple


# ---------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    """Immutable value sent from a coordinator to the control loop."""

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PreflightCheck(BaseEvent):
    label: str
    ok: bool
    detail: Optional[str] = None

@dataclass(frozen=True)
class PreflightComplete(BaseEvent):
    cluster_name: str = ""


# ---------------------------------------------------------------------
# Image pulls
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PullStarted(BaseEvent):
    index: int
    image: str

@dataclass(frozen=True)
class PullRetrying(BaseEvent):
    index: int
    image: str
    attempt: int

@dataclass(frozen=True)
class PullCompleted(BaseEvent):
    index: int
    image: str
    elapsed: float      # seconds

@dataclass(frozen=True)
class PullFailed(BaseEvent):
    index: int
    image: str
    error: str
    attempt: int


# ---------------------------------------------------------------------
# Deploy sequence
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DeployStepResult(BaseEvent):
    index: int
    name: str
    ok: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class DeploySequenceComplete(BaseEvent):
    pass


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PodHealth:
    name: str
    deployment: str
    ready: bool
    phase: str
    image: str
    restarts: int
    error: Optional[str] = None
    logs_tail: Optional[str] = None

@dataclass(frozen=True)
class PodUpdate(BaseEvent):
    pod: PodHealth

@dataclass(frozen=True)
class RecoveryAttempt(BaseEvent):
    deployment: str
    attempt: int

@dataclass(frozen=True)
class AllHealthy(BaseEvent):
    pass

@dataclass(frozen=True)
class HealthFailed(BaseEvent):
    unhealthy: Tuple[PodHealth, ...] = ()
    error: Optional[str] = None

# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/engine/controller.py
from __future__ import annotations

import asyncio
import copy
import logging
import shutil
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from bakerst.app.phase import ItemState, Phase, StatusRow
from bakerst.app.state import InstallerState
from bakerst.config.models import InstallerSettings
from bakerst.deploy.sequencer import run_steps
from bakerst.deploy.steps import StepContext, monitored_deployments, plan_steps
from bakerst.health import monitor as health
from bakerst.images.puller import MAX_PULL_ATTEMPTS, Puller, pull_all
from bakerst.k8s.client import ClusterClient
from bakerst.manifest.models import ReleaseManifest
from bakerst.observers.dispatcher import EventBus
from bakerst.observers.events import (
    AllHealthy,
    BaseEvent,
    DeploySequenceComplete,
    DeployStepResult,
    HealthFailed,
    PodUpdate,
    PreflightCheck,
    PreflightComplete,
    PullCompleted,
    PullFailed,
    PullRetrying,
    PullStarted,
    RecoveryAttempt,
)

log = logging.getLogger("bakerst")

INTENT_WAIT = 0.05      # seconds the loop waits for a keypress
CLUSTER_CHECK = "Kubernetes cluster"
DOCKER_CHECK = "Docker CLI"


class Intent(Enum):
    ADVANCE = "advance"
    BACK = "back"
    CHAR = "char"
    BACKSPACE = "backspace"
    UP = "up"
    DOWN = "down"
    TOGGLE = "toggle"
    QUIT = "quit"


class Frontend(Protocol):
    def draw(self, state: InstallerState) -> None: ...

    async def next_intent(self, timeout: float) -> Optional[Tuple[Intent, str]]: ...


class Installer:
    """
    The control loop. Sole owner of :class:`InstallerState`.

    Each coordinator runs as its own task and talks back through its own
    queue; events are applied here and nowhere else.
    """

    def __init__(
        self,
        manifest: ReleaseManifest,
        settings: InstallerSettings,
        *,
        cluster_factory: Callable[[], ClusterClient],
        puller: Optional[Puller] = None,
        bus: Optional[EventBus] = None,
        docker_binary: str = "docker",
        health_options: Optional[dict] = None,
    ):
        self.manifest = manifest
        self.settings = settings
        self.cluster_factory = cluster_factory
        self.puller = puller
        self.bus = bus or EventBus()
        self.docker_binary = docker_binary
        self.health_options = health_options or {}

        self.state = InstallerState.from_manifest(
            manifest, namespace=settings.namespace, agent_name=settings.agent_name
        )
        self.steps = plan_steps(manifest, skip_extensions=settings.skip_extensions)
        self._queues: Dict[Phase, asyncio.Queue] = {}
        self._tasks: Dict[Phase, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Foreground
    # ------------------------------------------------------------------
    def snapshot(self) -> InstallerState:
        return copy.deepcopy(self.state)

    def handle_intent(self, intent: Intent, char: str = "") -> None:
        s = self.state
        if intent is Intent.QUIT:
            s.should_quit = True
            return

        phase = s.phase
        if phase is Phase.SECRETS:
            if intent is Intent.CHAR:
                s.append_char(char)
            elif intent is Intent.BACKSPACE:
                s.remove_char()
            elif intent is Intent.ADVANCE:
                s.submit_secret()
            elif intent is Intent.BACK:
                s.skip_secret()
        elif phase is Phase.FEATURES:
            if intent is Intent.UP:
                s.move_feature_cursor(-1)
            elif intent is Intent.DOWN:
                s.move_feature_cursor(1)
            elif intent is Intent.TOGGLE or (intent is Intent.CHAR and char == " "):
                s.toggle_feature()
            elif intent is Intent.ADVANCE:
                s.finish_features()
        elif phase is Phase.CONFIRM:
            if intent is Intent.ADVANCE:
                s.advance()
            elif intent is Intent.BACK:
                s.back_to_secrets()
        elif phase is Phase.COMPLETE:
            if intent is Intent.ADVANCE:
                # acknowledged
                s.should_quit = True

    def drain(self) -> int:
        """Apply every event already waiting in any coordinator queue. Never blocks."""
        applied = 0
        for queue in self._queues.values():
            while True:
                try:
                    event = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                self.apply_event(event)
                self.bus.emit(event)
                applied += 1
        return applied

    def tick(self) -> None:
        """Start the coordinator for the current phase (once), then check auto-advance."""
        s = self.state
        phase = s.phase
        if phase in (Phase.PREFLIGHT, Phase.PULL, Phase.DEPLOY, Phase.HEALTH) and phase not in self._tasks:
            self._start(phase)

        if phase is Phase.PREFLIGHT:
            if s.preflight_done and all(r.state is ItemState.DONE for r in s.preflight_checks):
                s.advance()
        elif phase is Phase.SECRETS:
            if s.current_prompt is None:
                s.finish_secrets()
        elif phase is Phase.PULL:
            if all(r.terminal for r in s.pull_statuses):
                s.advance()
        elif phase is Phase.DEPLOY:
            if s.deploy_finished:
                s.advance()
        elif phase is Phase.HEALTH:
            if s.health_done:
                s.advance()

    async def run(self, frontend: Frontend) -> InstallerState:
        """Drive the install until the operator quits or acknowledges completion."""
        while not self.state.should_quit:
            self.tick()
            frontend.draw(self.snapshot())
            received = await frontend.next_intent(INTENT_WAIT)
            if received is not None:
                self.handle_intent(*received)
            self.drain()
        # in-flight coordinators are left alone; their late events are never read
        return self.snapshot()

    async def settle(self) -> None:
        """Wait for every started coordinator to finish, then drain."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.drain()

    # ------------------------------------------------------------------
    # Coordinators
    # ------------------------------------------------------------------
    def pull_images(self) -> List[str]:
        images = []
        for img in self.manifest.images:
            if self.settings.skip_extensions and img.component.startswith("ext-"):
                continue
            images.append(img.image)
        return images

    def _start(self, phase: Phase) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[phase] = queue
        emit = queue.put_nowait
        s = self.state

        if phase is Phase.PREFLIGHT:
            coro = self._preflight(emit)
        elif phase is Phase.PULL:
            images = self.pull_images()
            s.pull_statuses = [StatusRow(name=i) for i in images]
            s.pull_progress = (0, len(images))
            coro = pull_all(images, emit, puller=self.puller)
        elif phase is Phase.DEPLOY:
            s.deploy_statuses = [StatusRow(name=step.name) for step in self.steps]
            s.deploy_progress = (0, len(self.steps))
            # the task gets its own copy; the state stays ours
            ctx = StepContext(manifest=self.manifest, config=copy.deepcopy(s.config))
            coro = run_steps(self.steps, ctx, emit, cluster_factory=self.cluster_factory)
        else:
            coro = health.monitor(
                self.cluster_factory,
                s.config.namespace,
                monitored_deployments(self.steps),
                emit,
                **self.health_options,
            )

        log.debug("starting %s coordinator", phase.label)
        self._tasks[phase] = asyncio.create_task(coro, name=f"bakerst-{phase.name.lower()}")

    async def _preflight(self, emit: Callable[[BaseEvent], None]) -> None:
        cluster_name = ""
        try:
            cluster = await asyncio.to_thread(self.cluster_factory)
            version = await asyncio.to_thread(cluster.version)
        except Exception as e:
            emit(PreflightCheck(label=CLUSTER_CHECK, ok=False, detail=str(e)))
        else:
            cluster_name = f"Kubernetes v{version}"
            emit(PreflightCheck(label=CLUSTER_CHECK, ok=True, detail=cluster_name))

        docker = shutil.which(self.docker_binary)
        if docker:
            emit(PreflightCheck(label=DOCKER_CHECK, ok=True, detail=docker))
        else:
            emit(PreflightCheck(label=DOCKER_CHECK, ok=False, detail=f"{self.docker_binary} not found in PATH"))

        emit(PreflightComplete(cluster_name=cluster_name))

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------
    def apply_event(self, event: BaseEvent) -> None:
        s = self.state

        if isinstance(event, PreflightCheck):
            s.preflight_checks.append(StatusRow(
                name=event.label,
                state=ItemState.DONE if event.ok else ItemState.FAILED,
                detail=event.detail,
            ))
        elif isinstance(event, PreflightComplete):
            s.preflight_done = True
            s.cluster_name = event.cluster_name
            failed = [r.name for r in s.preflight_checks if r.state is ItemState.FAILED]
            if failed:
                s.message = f"preflight failed: {', '.join(failed)}"

        elif isinstance(event, PullStarted):
            s.pull_statuses[event.index].state = ItemState.IN_PROGRESS
        elif isinstance(event, PullRetrying):
            s.pull_statuses[event.index].detail = f"retry {event.attempt}/{MAX_PULL_ATTEMPTS}"
        elif isinstance(event, PullCompleted):
            row = s.pull_statuses[event.index]
            row.state, row.detail = ItemState.DONE, f"{event.elapsed:.1f}s"
            s.pull_progress = (s.pull_progress[0] + 1, s.pull_progress[1])
        elif isinstance(event, PullFailed):
            row = s.pull_statuses[event.index]
            row.state, row.detail = ItemState.FAILED, event.error
            s.pull_progress = (s.pull_progress[0] + 1, s.pull_progress[1])

        elif isinstance(event, DeployStepResult):
            row = s.deploy_statuses[event.index]
            row.state = ItemState.DONE if event.ok else ItemState.FAILED
            row.detail = event.error
            s.deploy_progress = (s.deploy_progress[0] + 1, s.deploy_progress[1])
        elif isinstance(event, DeploySequenceComplete):
            s.deploy_finished = True
            for row in s.deploy_statuses:
                if row.state is ItemState.PENDING:
                    row.state = ItemState.SKIPPED

        elif isinstance(event, PodUpdate):
            s.upsert_pod(event.pod)
        elif isinstance(event, RecoveryAttempt):
            s.recovery_log.append(
                f"{event.deployment}: recovery attempt {event.attempt}/{health.MAX_RECOVERY_ATTEMPTS}"
            )
        elif isinstance(event, AllHealthy):
            s.health_done = True
        elif isinstance(event, HealthFailed):
            s.health_failed = True
            s.health_error = event.error
            for pod in event.unhealthy:
                s.upsert_pod(pod)
            s.message = event.error or f"{len(event.unhealthy)} pods did not become healthy"
        else:
            log.debug("ignoring unknown event %s", type(event).__name__)

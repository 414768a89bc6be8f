# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/cli/console.py
from __future__ import annotations

import asyncio
import getpass
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

import typer

from bakerst.app.phase import ItemState, Phase, StatusRow
from bakerst.app.state import InstallerState
from bakerst.deploy.templates import mask_secret
from bakerst.engine.controller import Intent

_MARKS = {
    ItemState.PENDING: " ",
    ItemState.IN_PROGRESS: "~",
    ItemState.DONE: "+",
    ItemState.FAILED: "x",
    ItemState.SKIPPED: "-",
}

# phases that wait for operator input
_INTERACTIVE = (Phase.SECRETS, Phase.FEATURES, Phase.CONFIRM, Phase.COMPLETE)


class ConsoleFrontend:
    """
    Line-oriented frontend: prints what changed since the last draw and
    turns typed lines into intents.
    """

    def __init__(
        self,
        echo: Callable[[str], None] = typer.echo,
        read_line: Callable[[str], str] = input,
        read_secret: Callable[[str], str] = getpass.getpass,
    ):
        self.echo = echo
        self.read_line = read_line
        self.read_secret = read_secret
        self._state: Optional[InstallerState] = None
        self._phase: Optional[Phase] = None
        self._printed: Set[Tuple[str, str, str]] = set()
        self._message: Optional[str] = None
        self._features_seen: Tuple[bool, ...] = ()
        self._pending: Deque[Tuple[Intent, str]] = deque()
        self._reader: Optional[asyncio.Task] = None
        self._reader_phase: Optional[Phase] = None

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    def draw(self, state: InstallerState) -> None:
        self._state = state
        if state.phase is not self._phase:
            self._phase = state.phase
            self.echo("")
            typer.secho(
                f"[{state.phase.index + 1}/{Phase.total()}] {state.phase.label}",
                bold=True,
            )
            self._draw_phase_intro(state)
            self._features_seen = self._feature_flags(state)
        elif state.phase is Phase.FEATURES and self._feature_flags(state) != self._features_seen:
            self._features_seen = self._feature_flags(state)
            self._draw_features(state)

        for group, rows in (
            ("preflight", state.preflight_checks),
            ("pull", state.pull_statuses),
            ("deploy", state.deploy_statuses),
        ):
            self._draw_rows(group, rows)

        for pod in state.pod_statuses.values():
            key = ("pod", pod.name, f"{pod.ready}{pod.phase}{pod.error}")
            if key not in self._printed:
                self._printed.add(key)
                status = "ready" if pod.ready else (pod.error or pod.phase)
                self.echo(f"  {pod.name:<40} {status} (restarts {pod.restarts})")
        for note in state.recovery_log:
            key = ("recovery", note, "")
            if key not in self._printed:
                self._printed.add(key)
                self.echo(f"  ! {note}")

        if state.message and state.message != self._message:
            typer.secho(f"  {state.message}", fg=typer.colors.YELLOW)
        self._message = state.message

    @staticmethod
    def _feature_flags(state: InstallerState) -> Tuple[bool, ...]:
        return tuple(f.enabled for f in state.config.features)

    def _draw_rows(self, group: str, rows: List[StatusRow]) -> None:
        for row in rows:
            key = (group, row.name, f"{row.state.value}{row.detail}")
            if key in self._printed:
                continue
            self._printed.add(key)
            if row.state is ItemState.PENDING:
                continue
            detail = f"  {row.detail}" if row.detail else ""
            self.echo(f"  [{_MARKS[row.state]}] {row.name}{detail}")

    def _draw_phase_intro(self, state: InstallerState) -> None:
        if state.phase is Phase.FEATURES:
            self._draw_features(state)
            if state.config.features:
                self.echo("  type a number to toggle, Enter to continue")
        elif state.phase is Phase.CONFIRM:
            self._draw_summary(state)
            self.echo("  Enter to install, 'b' to re-enter secrets, 'q' to quit")
        elif state.phase is Phase.COMPLETE:
            self.echo(f"  Baker Street is running in namespace {state.config.namespace}")
            self.echo(f"  UI auth token: {mask_secret(state.config.auth_token)}")
            self.echo("  Enter to exit")

    def _draw_features(self, state: InstallerState) -> None:
        if not state.config.features:
            self.echo("  no optional features in this release")
        for i, f in enumerate(state.config.features, start=1):
            self.echo(f"  {i}. [{'x' if f.enabled else ' '}] {f.name}")

    def _draw_summary(self, state: InstallerState) -> None:
        cfg = state.config
        enabled = [f.name for f in cfg.enabled_features()]
        self.echo(f"  Namespace : {cfg.namespace}")
        self.echo(f"  Agent     : {cfg.agent_name}")
        self.echo(f"  Auth      : {cfg.auth_method}")
        self.echo(f"  Voyage    : {'set' if cfg.voyage_api_key else 'not set'}")
        self.echo(f"  Features  : {', '.join(enabled) if enabled else 'none'}")
        self.echo(f"  Token     : {mask_secret(cfg.auth_token)}")

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    def _prompt(self, state: InstallerState) -> Tuple[str, bool]:
        if state.phase is Phase.SECRETS and state.current_prompt is not None:
            p = state.current_prompt
            suffix = "" if p.required else " (Enter to skip)"
            return f"  {p.description}{suffix}: ", p.is_secret
        return "> ", False

    @staticmethod
    def _wants_input(state: InstallerState) -> bool:
        if state.phase in _INTERACTIVE or state.health_failed:
            return True
        return state.phase is Phase.PREFLIGHT and state.preflight_done

    async def next_intent(self, timeout: float) -> Optional[Tuple[Intent, str]]:
        if self._pending:
            return self._pending.popleft()

        state = self._state
        if state is None or not self._wants_input(state):
            await asyncio.sleep(timeout)
            return None

        if self._reader is None:
            prompt, secret = self._prompt(state)
            reader = self.read_secret if secret else self.read_line
            self._reader = asyncio.create_task(asyncio.to_thread(reader, prompt))
            self._reader_phase = state.phase

        done, _ = await asyncio.wait({self._reader}, timeout=timeout)
        if not done:
            return None

        task, self._reader = self._reader, None
        try:
            line = task.result()
        except (EOFError, KeyboardInterrupt):
            return Intent.QUIT, ""
        self._pending.extend(self.parse_line(line, self._reader_phase, state))
        return self._pending.popleft() if self._pending else None

    @staticmethod
    def parse_line(line: str, phase: Optional[Phase], state: InstallerState) -> List[Tuple[Intent, str]]:
        """Translate one typed line into the intents a keyboard would have produced."""
        text = line.strip()
        if text.lower() == "q" and phase is not Phase.SECRETS:
            return [(Intent.QUIT, "")]

        if phase is Phase.SECRETS:
            if not text:
                prompt = state.current_prompt
                return [(Intent.ADVANCE if prompt is None or prompt.required else Intent.BACK, "")]
            return [(Intent.CHAR, c) for c in text] + [(Intent.ADVANCE, "")]

        if phase is Phase.FEATURES:
            if not text:
                return [(Intent.ADVANCE, "")]
            intents: List[Tuple[Intent, str]] = []
            cursor = state.feature_cursor
            for token in text.replace(",", " ").split():
                if not token.isdigit():
                    continue
                target = int(token) - 1
                if not 0 <= target < len(state.config.features):
                    continue
                step = Intent.DOWN if target > cursor else Intent.UP
                intents.extend((step, "") for _ in range(abs(target - cursor)))
                intents.append((Intent.TOGGLE, ""))
                cursor = target
            return intents

        if phase is Phase.CONFIRM:
            if text.lower() in ("b", "back"):
                return [(Intent.BACK, "")]
            return [(Intent.ADVANCE, "")] if not text else []

        if phase in (Phase.PREFLIGHT, Phase.HEALTH):
            # nothing left to do but leave
            return [(Intent.QUIT, "")]

        return [(Intent.ADVANCE, "")]


def render_status_table(rows: List[Dict[str, str]], echo: Callable[[str], None] = typer.echo) -> None:
    """Print deployments as an aligned table."""
    headers = ["NAME", "READY", "IMAGE"]
    widths = [max(len(h), *(len(r[h]) for r in rows)) if rows else len(h) for h in headers]
    echo("  ".join(h.ljust(w) for h, w in zip(headers, widths)))
    for r in rows:
        echo("  ".join(r[h].ljust(w) for h, w in zip(headers, widths)))

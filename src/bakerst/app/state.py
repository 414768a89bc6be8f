# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/app/state.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bakerst.app.phase import Phase, StatusRow
from bakerst.deploy.templates import generate_auth_token
from bakerst.manifest.models import ReleaseManifest
from bakerst.observers.events import PodHealth

log = logging.getLogger("bakerst")

# base secret key -> InstallConfig attribute
CONFIG_FIELDS: Dict[str, str] = {
    "ANTHROPIC_OAUTH_TOKEN": "oauth_token",
    "ANTHROPIC_API_KEY": "api_key",
    "VOYAGE_API_KEY": "voyage_api_key",
    "AGENT_NAME": "agent_name",
}

# feature secret keys that are not masked while typing
_PLAIN_SUFFIXES = ("_PATH", "_IDS", "_URL")


@dataclass
class FeatureSelection:
    id: str
    name: str
    enabled: bool = False
    secrets: List[Tuple[str, Optional[str]]] = field(default_factory=list)   # (key, value)

    def set_secret(self, key: str, value: Optional[str]) -> None:
        self.secrets = [(k, value if k == key else v) for k, v in self.secrets]

    def clear_secrets(self) -> None:
        self.secrets = [(k, None) for k, _ in self.secrets]


@dataclass
class InstallConfig:
    """Collected secrets and configuration."""
    namespace: str = "bakerst"
    agent_name: str = "Baker"
    oauth_token: Optional[str] = None
    api_key: Optional[str] = None
    voyage_api_key: Optional[str] = None
    auth_token: str = ""
    features: List[FeatureSelection] = field(default_factory=list)

    def feature(self, feature_id: str) -> Optional[FeatureSelection]:
        return next((f for f in self.features if f.id == feature_id), None)

    def enabled_features(self) -> List[FeatureSelection]:
        return [f for f in self.features if f.enabled]

    @property
    def auth_method(self) -> str:
        if self.oauth_token:
            return "OAuth Token"
        if self.api_key:
            return "API Key"
        return "Not set"


@dataclass
class SecretPrompt:
    key: str
    description: str
    required: bool = False
    is_secret: bool = True
    from_feature: Optional[str] = None      # feature id, None for base manifest secrets
    value: Optional[str] = None             # None = skipped / not yet answered


@dataclass
class InstallerState:
    """
    Everything the installer shows. Mutated only by the control loop.

    ``pending_return`` tags the Features -> Secrets -> Confirm detour: when it
    is ``Phase.CONFIRM``, finishing secret collection lands on Confirm instead
    of Features.
    """
    config: InstallConfig = field(default_factory=InstallConfig)
    phase: Phase = Phase.PREFLIGHT
    pending_return: Optional[Phase] = None
    cluster_name: str = ""
    manifest_version: str = ""
    message: Optional[str] = None
    should_quit: bool = False

    # secrets
    secret_prompts: List[SecretPrompt] = field(default_factory=list)
    secret_cursor: int = 0
    secret_input: str = ""

    # features
    feature_cursor: int = 0

    # preflight / pull / deploy / health
    preflight_checks: List[StatusRow] = field(default_factory=list)
    preflight_done: bool = False
    pull_statuses: List[StatusRow] = field(default_factory=list)
    pull_progress: Tuple[int, int] = (0, 0)
    deploy_statuses: List[StatusRow] = field(default_factory=list)
    deploy_progress: Tuple[int, int] = (0, 0)
    deploy_finished: bool = False
    pod_statuses: Dict[str, PodHealth] = field(default_factory=dict)
    recovery_log: List[str] = field(default_factory=list)
    health_done: bool = False
    health_failed: bool = False
    health_error: Optional[str] = None

    @classmethod
    def from_manifest(
        cls,
        manifest: ReleaseManifest,
        namespace: Optional[str] = None,
        agent_name: Optional[str] = None,
    ) -> "InstallerState":
        config = InstallConfig(
            namespace=namespace or manifest.defaults.namespace,
            agent_name=agent_name or manifest.defaults.agent_name,
            features=[
                FeatureSelection(
                    id=f.id,
                    name=f.name,
                    enabled=f.default_enabled,
                    secrets=[(k, None) for k in f.secrets],
                )
                for f in manifest.optional_features
            ],
        )
        prompts = [
            SecretPrompt(
                key=s.key,
                description=s.description,
                required=s.required,
                is_secret=s.is_secret,
            )
            for s in manifest.required_secrets
        ]
        return cls(config=config, secret_prompts=prompts, manifest_version=manifest.version)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def advance(self) -> bool:
        """Move to the fixed successor. False only at COMPLETE."""
        nxt = self.phase.next()
        if nxt is None:
            return False
        log.debug("phase %s -> %s", self.phase.label, nxt.label)
        self.phase = nxt
        return True

    def back_to_secrets(self) -> bool:
        """Only valid from Confirm. Resets secret collection so re-entry starts clean."""
        if self.phase is not Phase.CONFIRM:
            return False
        self.phase = Phase.SECRETS
        self.pending_return = None
        self.secret_cursor = 0
        self.secret_input = ""
        self.message = None
        # rebuilt on the next pass through Features
        self.secret_prompts = [p for p in self.secret_prompts if p.from_feature is None]
        return True

    def _enter_confirm(self) -> None:
        if not self.config.auth_token:
            self.config.auth_token = generate_auth_token()
        if self.phase is Phase.FEATURES:
            self.advance()
        else:
            self.phase = Phase.CONFIRM

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------
    @property
    def current_prompt(self) -> Optional[SecretPrompt]:
        if self.secret_cursor < len(self.secret_prompts):
            return self.secret_prompts[self.secret_cursor]
        return None

    def append_char(self, ch: str) -> None:
        if self.phase is Phase.SECRETS and self.current_prompt is not None:
            self.secret_input += ch

    def remove_char(self) -> None:
        if self.phase is Phase.SECRETS:
            self.secret_input = self.secret_input[:-1]

    def submit_secret(self) -> None:
        prompt = self.current_prompt
        if self.phase is not Phase.SECRETS or prompt is None:
            return
        value = self.secret_input.strip()
        if not value and prompt.required:
            self.message = f"{prompt.key} is required"
            return
        self._record(prompt, value or None)

    def skip_secret(self) -> None:
        prompt = self.current_prompt
        if self.phase is not Phase.SECRETS or prompt is None:
            return
        if prompt.required:
            self.message = f"{prompt.key} is required and cannot be skipped"
            return
        self._record(prompt, None)

    def _record(self, prompt: SecretPrompt, value: Optional[str]) -> None:
        prompt.value = value
        if prompt.from_feature is not None:
            feature = self.config.feature(prompt.from_feature)
            if feature is not None:
                feature.set_secret(prompt.key, value)
        elif prompt.key in CONFIG_FIELDS:
            attr = CONFIG_FIELDS[prompt.key]
            if attr != "agent_name":
                setattr(self.config, attr, value)
            elif value:
                self.config.agent_name = value

        self.secret_cursor += 1
        self.secret_input = ""
        self.message = None
        if self.current_prompt is None:
            self.finish_secrets()

    def finish_secrets(self) -> None:
        """Leave Secrets: to Features normally, straight to Confirm after the feature detour."""
        if self.phase is not Phase.SECRETS:
            return
        if self.pending_return is Phase.CONFIRM:
            self.pending_return = None
            self._enter_confirm()
        else:
            self.advance()

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------
    def move_feature_cursor(self, delta: int) -> None:
        if self.phase is not Phase.FEATURES or not self.config.features:
            return
        last = len(self.config.features) - 1
        self.feature_cursor = max(0, min(last, self.feature_cursor + delta))

    def toggle_feature(self) -> None:
        if self.phase is not Phase.FEATURES or not self.config.features:
            return
        f = self.config.features[self.feature_cursor]
        f.enabled = not f.enabled

    def finish_features(self) -> None:
        """
        Confirm the feature selection. Enabled features that need secrets send
        the installer back through Secrets for just those prompts.
        """
        if self.phase is not Phase.FEATURES:
            return
        first_new = self._rebuild_feature_prompts()
        if first_new is None:
            self._enter_confirm()
            return
        self.pending_return = Phase.CONFIRM
        self.phase = Phase.SECRETS
        self.secret_cursor = first_new
        self.secret_input = ""

    def _rebuild_feature_prompts(self) -> Optional[int]:
        """Drop all feature prompts and regenerate them. Returns the index of the first, if any."""
        self.secret_prompts = [p for p in self.secret_prompts if p.from_feature is None]
        for f in self.config.features:
            f.clear_secrets()

        first = len(self.secret_prompts)
        for f in self.config.enabled_features():
            for key, _ in f.secrets:
                self.secret_prompts.append(SecretPrompt(
                    key=key,
                    description=f"{f.name}: {key}",
                    required=False,
                    is_secret=not key.endswith(_PLAIN_SUFFIXES),
                    from_feature=f.id,
                ))
        return first if len(self.secret_prompts) > first else None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    def upsert_pod(self, pod: PodHealth) -> None:
        # dict keeps first-insertion order; replacing a key keeps its position
        self.pod_statuses[pod.name] = pod

    @property
    def unhealthy_pods(self) -> List[PodHealth]:
        return [p for p in self.pod_statuses.values() if not p.ready]

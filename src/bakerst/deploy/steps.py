# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/deploy/steps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from bakerst.app.state import InstallConfig
from bakerst.deploy import templates as tpl
from bakerst.k8s.client import ClusterClient
from bakerst.manifest.models import ReleaseManifest

log = logging.getLogger("bakerst")

BRAIN_SECRETS = "bakerst-brain-secrets"
WORKER_SECRETS = "bakerst-worker-secrets"
GATEWAY_SECRETS = "bakerst-gateway-secrets"
GITHUB_SECRETS = "bakerst-github-secrets"
PERPLEXITY_SECRETS = "bakerst-perplexity-secrets"
OS_CONFIGMAP = "bakerst-os"

UI_NODE_PORT = 30080

# messaging adapters live in the gateway
GATEWAY_KEY_PREFIXES = ("TELEGRAM_", "DISCORD_")

# provider keys consumed by exactly one extension each
DEDICATED_SECRET_GROUPS: Dict[str, str] = {
    "GITHUB_TOKEN": GITHUB_SECRETS,
    "PERPLEXITY_API_KEY": PERPLEXITY_SECRETS,
}

# (step name, manifest component, template)
CORE_SERVICES = [
    ("Brain", "brain", tpl.BRAIN_YAML),
    ("Worker", "worker", tpl.WORKER_YAML),
    ("Gateway", "gateway", tpl.GATEWAY_YAML),
    ("UI", "ui", tpl.UI_YAML),
]
OPTIONAL_SERVICES = [
    ("Voice", "voice", tpl.VOICE_YAML),
    ("Sysadmin", "sysadmin", tpl.SYSADMIN_YAML),
]
EXTENSIONS = [
    ("toolbox", "ext-toolbox", tpl.TOOLBOX_YAML),
    ("browser", "ext-browser", tpl.BROWSER_YAML),
]


@dataclass(frozen=True)
class StepContext:
    """Read-only inputs every step action sees."""
    manifest: ReleaseManifest
    config: InstallConfig

    @property
    def namespace(self) -> str:
        return self.config.namespace


StepAction = Callable[[ClusterClient, StepContext], None]


@dataclass(frozen=True)
class DeployStep:
    name: str
    action: StepAction
    component: Optional[str] = None


# ---------------------------------------------------------------------
# Secret distribution
# ---------------------------------------------------------------------
def distribute_secrets(config: InstallConfig) -> Dict[str, Dict[str, str]]:
    """
    Partition collected values into Kubernetes secret names.

    Only enabled features contribute; empty values are dropped and empty
    groups are omitted.
    """
    groups: Dict[str, Dict[str, str]] = {
        BRAIN_SECRETS: {},
        WORKER_SECRETS: {},
        GATEWAY_SECRETS: {},
        GITHUB_SECRETS: {},
        PERPLEXITY_SECRETS: {},
    }

    def put(group: str, key: str, value: Optional[str]) -> None:
        if value:
            groups[group][key] = value

    for key, value in (
        ("ANTHROPIC_OAUTH_TOKEN", config.oauth_token),
        ("ANTHROPIC_API_KEY", config.api_key),
        ("AGENT_NAME", config.agent_name),
    ):
        put(BRAIN_SECRETS, key, value)
        put(WORKER_SECRETS, key, value)

    put(BRAIN_SECRETS, "VOYAGE_API_KEY", config.voyage_api_key)
    put(BRAIN_SECRETS, "AUTH_TOKEN", config.auth_token)
    put(GATEWAY_SECRETS, "AUTH_TOKEN", config.auth_token)

    for feature in config.enabled_features():
        for key, value in feature.secrets:
            if key in DEDICATED_SECRET_GROUPS:
                put(DEDICATED_SECRET_GROUPS[key], key, value)
            elif key.startswith(GATEWAY_KEY_PREFIXES):
                put(GATEWAY_SECRETS, key, value)
            else:
                put(BRAIN_SECRETS, key, value)

    return {name: data for name, data in groups.items() if data}


# ---------------------------------------------------------------------
# Step actions
# ---------------------------------------------------------------------
def _image(ctx: StepContext, component: str) -> str:
    img = ctx.manifest.image_for(component)
    if img is None:
        raise ValueError(f"manifest declares no image for {component}")
    return img.image


def _render_context(ctx: StepContext, component: Optional[str]) -> dict:
    context = {
        "namespace": ctx.namespace,
        "version": ctx.manifest.version,
        "agent_name": ctx.config.agent_name,
        "ui_node_port": UI_NODE_PORT,
    }
    if component:
        context["image"] = _image(ctx, component)
    return context


def _apply_template(template: str, component: Optional[str] = None) -> StepAction:
    def action(cluster: ClusterClient, ctx: StepContext) -> None:
        text = tpl.render(template, _render_context(ctx, component))
        applied = cluster.apply_yaml(ctx.namespace, text)
        log.debug("[deploy] %s -> %s", template, ", ".join(applied))
    return action


def create_secrets(cluster: ClusterClient, ctx: StepContext) -> None:
    for name, data in distribute_secrets(ctx.config).items():
        cluster.create_secret(ctx.namespace, name, data)
        log.debug("[deploy] secret %s (%d keys)", name, len(data))


def create_os_configmap(cluster: ClusterClient, ctx: StepContext) -> None:
    cluster.create_configmap(ctx.namespace, OS_CONFIGMAP, tpl.os_files())


# ---------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------
def plan_steps(manifest: ReleaseManifest, *, skip_extensions: bool = False) -> List[DeployStep]:
    """
    Ordered deploy steps for *manifest*.

    Namespace and secrets go first because every workload after them
    mounts one or the other.
    """
    steps: List[DeployStep] = [
        DeployStep("Namespace", _apply_template(tpl.NAMESPACE_YAML)),
        DeployStep("Secrets", create_secrets),
        DeployStep("OS ConfigMap", create_os_configmap),
        DeployStep("PVCs", _apply_template(tpl.PVCS_YAML)),
        DeployStep("RBAC", _apply_template(tpl.RBAC_YAML)),
        DeployStep("NATS", _apply_template(tpl.NATS_YAML), component="nats"),
        DeployStep("Qdrant", _apply_template(tpl.QDRANT_YAML), component="qdrant"),
    ]
    for name, component, template in CORE_SERVICES:
        steps.append(DeployStep(name, _apply_template(template, component), component=component))
    for name, component, template in OPTIONAL_SERVICES:
        if manifest.has_component(component):
            steps.append(DeployStep(name, _apply_template(template, component), component=component))

    steps.append(DeployStep("Network Policies", _apply_template(tpl.NETWORK_POLICIES_YAML)))

    if not skip_extensions:
        for short, component, template in EXTENSIONS:
            if manifest.has_component(component):
                steps.append(DeployStep(
                    f"Extension: {short}",
                    _apply_template(template, component),
                    component=component,
                ))
    return steps


def monitored_deployments(steps: List[DeployStep]) -> List[str]:
    """Deployment names the health monitor should watch (the ``app`` label of each workload)."""
    return [s.component for s in steps if s.component]

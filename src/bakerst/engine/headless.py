# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/engine/headless.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Mapping, Optional

import typer

from bakerst.app.state import FeatureSelection, InstallConfig
from bakerst.config.loader import resolve_secret_values
from bakerst.config.models import InstallerSettings
from bakerst.deploy.sequencer import run_steps
from bakerst.deploy.steps import StepContext, monitored_deployments, plan_steps
from bakerst.deploy.templates import generate_auth_token, mask_secret
from bakerst.health.monitor import poll_health, wait_for_rollout
from bakerst.images.puller import Puller, pull_all
from bakerst.k8s.client import ClusterClient
from bakerst.manifest.models import ReleaseManifest
from bakerst.observers.dispatcher import EventBus
from bakerst.observers.events import (
    BaseEvent,
    DeployStepResult,
    HealthFailed,
    PullCompleted,
    PullFailed,
    PullRetrying,
    RecoveryAttempt,
)

log = logging.getLogger("bakerst")

ROLLOUT_TIMEOUT = 180.0


def build_config(
    manifest: ReleaseManifest,
    settings: InstallerSettings,
    env: Mapping[str, str],
) -> InstallConfig:
    """
    Assemble an InstallConfig from settings and environment.

    A feature is enabled when listed in settings, or when it declares
    secrets and every one of them has a value.
    """
    feature_keys = [k for f in manifest.optional_features for k in f.secrets]
    values = resolve_secret_values(settings, env, keys=feature_keys)

    features = []
    for f in manifest.optional_features:
        enabled = f.id in settings.features or (bool(f.secrets) and all(values.get(k) for k in f.secrets))
        features.append(FeatureSelection(
            id=f.id,
            name=f.name,
            enabled=enabled,
            secrets=[(k, values.get(k)) for k in f.secrets],
        ))

    return InstallConfig(
        namespace=settings.namespace or manifest.defaults.namespace,
        agent_name=settings.agent_name or values.get("AGENT_NAME") or manifest.defaults.agent_name,
        oauth_token=values.get("ANTHROPIC_OAUTH_TOKEN"),
        api_key=values.get("ANTHROPIC_API_KEY"),
        voyage_api_key=values.get("VOYAGE_API_KEY"),
        auth_token=values.get("AUTH_TOKEN") or generate_auth_token(),
        features=features,
    )


def _printer(echo: Callable[[str], None], bus: EventBus) -> Callable[[BaseEvent], None]:
    def emit(event: BaseEvent) -> None:
        bus.emit(event)
        if isinstance(event, PullCompleted):
            echo(f"  [ok]   {event.image} ({event.elapsed:.1f}s)")
        elif isinstance(event, PullRetrying):
            echo(f"  [..]   {event.image} retry {event.attempt}")
        elif isinstance(event, PullFailed):
            echo(f"  [fail] {event.image}: {event.error}")
        elif isinstance(event, DeployStepResult):
            mark = "[ok]  " if event.ok else "[fail]"
            echo(f"  {mark} {event.name}" + (f": {event.error}" if event.error else ""))
        elif isinstance(event, RecoveryAttempt):
            echo(f"  [..]   {event.deployment}: recovery attempt {event.attempt}")
        elif isinstance(event, HealthFailed):
            for pod in event.unhealthy:
                echo(f"  [fail] {pod.name} ({pod.phase}) {pod.error or ''}".rstrip())
                if pod.logs_tail:
                    echo(pod.logs_tail.rstrip())
    return emit


async def run_headless(
    manifest: ReleaseManifest,
    settings: InstallerSettings,
    env: Optional[Mapping[str, str]] = None,
    *,
    cluster_factory: Callable[[], ClusterClient],
    puller: Optional[Puller] = None,
    bus: Optional[EventBus] = None,
    echo: Callable[[str], None] = typer.echo,
    health_options: Optional[dict] = None,
    rollout_timeout: float = ROLLOUT_TIMEOUT,
) -> int:
    """Linear install without a frontend. Returns the process exit code."""
    env = os.environ if env is None else env
    bus = bus or EventBus()
    emit = _printer(echo, bus)

    config = build_config(manifest, settings, env)
    if not (config.oauth_token or config.api_key):
        echo("ERROR: set ANTHROPIC_OAUTH_TOKEN or ANTHROPIC_API_KEY")
        return 1

    echo(f"Baker Street {manifest.version} -> namespace {config.namespace}")
    echo(f"  auth: {config.auth_method} ({mask_secret(config.oauth_token or config.api_key)})")
    enabled = [f.name for f in config.enabled_features()]
    echo(f"  features: {', '.join(enabled) if enabled else 'none'}")

    # preflight
    try:
        cluster = await asyncio.to_thread(cluster_factory)
        version = await asyncio.to_thread(cluster.version)
    except Exception as e:
        log.error("cluster unreachable: %s", e)
        echo(f"ERROR: cannot reach Kubernetes cluster: {e}")
        return 1
    echo(f"Cluster: Kubernetes v{version}")

    # pull
    images = [
        img.image for img in manifest.images
        if not (settings.skip_extensions and img.component.startswith("ext-"))
    ]
    echo(f"Pulling {len(images)} images...")
    pulls = await pull_all(images, emit, puller=puller)
    failed_pulls = sum(1 for r in pulls if not r.ok)
    if failed_pulls:
        echo(f"  {failed_pulls} image(s) failed to pull; continuing with what the cluster has")

    # deploy
    steps = plan_steps(manifest, skip_extensions=settings.skip_extensions)
    echo(f"Deploying {len(steps)} steps...")
    results = await run_steps(
        steps,
        StepContext(manifest=manifest, config=config),
        emit,
        cluster_factory=lambda: cluster,
    )
    failed_steps = [r.name for r in results if not r.ok]
    if failed_steps:
        echo(f"  failed steps: {', '.join(failed_steps)}")

    # health
    echo("Waiting for brain rollout...")
    try:
        await wait_for_rollout(cluster, config.namespace, "brain", rollout_timeout)
    except TimeoutError as e:
        echo(f"  {e}")
    except Exception as e:
        # a missing or unreadable deployment is left to the pod health check
        log.warning("brain rollout check failed: %s", e)
        echo(f"  cannot read brain rollout: {e}")
    echo("Checking pod health...")
    healthy = await poll_health(
        cluster, config.namespace, monitored_deployments(steps), emit, **(health_options or {})
    )
    if not healthy:
        echo("Install finished with unhealthy pods")
        return 1

    echo("Baker Street is up.")
    return 0

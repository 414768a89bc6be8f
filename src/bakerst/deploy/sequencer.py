# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/deploy/sequencer.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from bakerst.app.state import InstallConfig
from bakerst.deploy.steps import DeployStep, StepContext, plan_steps
from bakerst.k8s.client import ClusterClient
from bakerst.manifest.models import ReleaseManifest
from bakerst.observers.events import BaseEvent, DeploySequenceComplete, DeployStepResult

log = logging.getLogger("bakerst")

ClusterFactory = Callable[[], ClusterClient]


async def run_steps(
    steps: List[DeployStep],
    ctx: StepContext,
    emit: Callable[[BaseEvent], None],
    *,
    cluster_factory: ClusterFactory,
) -> List[DeployStepResult]:
    """
    Run *steps* one after another, reporting each.

    A failed step is recorded and the sequence carries on. If the cluster
    client cannot be built at all, the first step is reported failed and
    nothing else is attempted.
    """
    results: List[DeployStepResult] = []
    try:
        cluster = await asyncio.to_thread(cluster_factory)
    except Exception as e:
        log.error("[deploy] cannot connect to cluster: %s", e)
        first = steps[0].name if steps else "Namespace"
        result = DeployStepResult(index=0, name=first, ok=False, error=f"cannot connect to cluster: {e}")
        emit(result)
        emit(DeploySequenceComplete())
        return [result]

    for index, step in enumerate(steps):
        error: Optional[str] = None
        try:
            await asyncio.to_thread(step.action, cluster, ctx)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            log.warning("[deploy] step %s failed: %s", step.name, error)
        else:
            log.info("[deploy] step %s done", step.name)

        result = DeployStepResult(index=index, name=step.name, ok=error is None, error=error)
        results.append(result)
        emit(result)

    emit(DeploySequenceComplete())
    return results


async def run_deploy(
    manifest: ReleaseManifest,
    config: InstallConfig,
    emit: Callable[[BaseEvent], None],
    *,
    cluster_factory: ClusterFactory,
    skip_extensions: bool = False,
) -> List[DeployStepResult]:
    steps = plan_steps(manifest, skip_extensions=skip_extensions)
    ctx = StepContext(manifest=manifest, config=config)
    return await run_steps(steps, ctx, emit, cluster_factory=cluster_factory)

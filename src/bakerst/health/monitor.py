# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/health/monitor.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from bakerst.k8s.client import ClusterClient
from bakerst.observers.events import (
    AllHealthy,
    BaseEvent,
    HealthFailed,
    PodHealth,
    PodUpdate,
    RecoveryAttempt,
)

log = logging.getLogger("bakerst")

POLL_INTERVAL = 2.0
POD_TIMEOUT = 120.0
MAX_RECOVERY_ATTEMPTS = 3
RECOVERY_LOG_LINES = 50
FAILURE_LOG_LINES = 5
CRASH_LOOP = "CrashLoopBackOff"

Sleep = Callable[[float], Awaitable[None]]


def _crash_looping(container_statuses: List[dict]) -> bool:
    for cs in container_statuses:
        waiting = (cs.get("state") or {}).get("waiting") or {}
        if waiting.get("reason") == CRASH_LOOP:
            return True
    return False


def pod_health(pod: dict, deployment: str) -> PodHealth:
    """
    Summarize a pod (JSON form, camelCase keys).

    A pod with no container statuses yet is not ready.
    """
    meta = pod.get("metadata") or {}
    status = pod.get("status") or {}
    containers = status.get("containerStatuses") or []

    return PodHealth(
        name=meta.get("name", ""),
        deployment=deployment,
        ready=bool(containers) and all(cs.get("ready", False) for cs in containers),
        phase=status.get("phase") or "Unknown",
        image=containers[0].get("image", "") if containers else "",
        restarts=sum(int(cs.get("restartCount") or 0) for cs in containers),
        error=CRASH_LOOP if _crash_looping(containers) else None,
    )


def _read_log(cluster: ClusterClient, namespace: str, pod: str, lines: int) -> Optional[str]:
    try:
        return cluster.read_pod_log(namespace, pod, tail_lines=lines)
    except Exception as e:
        log.debug("[health] could not read logs of %s: %s", pod, e)
        return None


async def _recover(cluster: ClusterClient, namespace: str, pod: PodHealth) -> None:
    """Capture the crash output, then force-delete the pod so its ReplicaSet recreates it."""
    logs = await asyncio.to_thread(_read_log, cluster, namespace, pod.name, RECOVERY_LOG_LINES)
    if logs:
        log.info("[health] %s crash output (last %d lines):\n%s", pod.name, RECOVERY_LOG_LINES, logs)
    try:
        await asyncio.to_thread(cluster.delete_pod, namespace, pod.name, True)
    except Exception as e:
        log.warning("[health] failed to delete pod %s: %s", pod.name, e)


async def poll_health(
    cluster: ClusterClient,
    namespace: str,
    deployments: Sequence[str],
    emit: Callable[[BaseEvent], None],
    *,
    poll_interval: float = POLL_INTERVAL,
    timeout: float = POD_TIMEOUT,
    max_recovery: int = MAX_RECOVERY_ATTEMPTS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """
    Poll pods of *deployments* until all are ready or *timeout* elapses.

    Crash-looping pods are deleted to force recreation, at most
    *max_recovery* times per deployment. Returns True on AllHealthy.
    """
    recoveries: Dict[str, int] = {}
    started = clock()

    while True:
        unhealthy: List[PodHealth] = []
        all_ready = True

        for deployment in deployments:
            try:
                pods = await asyncio.to_thread(cluster.list_pods, namespace, f"app={deployment}")
            except Exception as e:
                log.warning("[health] listing pods for %s failed: %s", deployment, e)
                all_ready = False
                continue

            for raw in pods:
                pod = pod_health(raw, deployment)

                if pod.error == CRASH_LOOP:
                    used = recoveries.get(deployment, 0)
                    if used < max_recovery:
                        recoveries[deployment] = used + 1
                        log.warning("[health] %s crash-looping, recovery attempt %d", pod.name, used + 1)
                        emit(RecoveryAttempt(deployment=deployment, attempt=used + 1))
                        await _recover(cluster, namespace, pod)

                if not pod.ready:
                    all_ready = False
                    unhealthy.append(pod)
                emit(PodUpdate(pod=pod))

        if all_ready and deployments:
            log.info("[health] all %d deployments healthy", len(deployments))
            emit(AllHealthy())
            return True

        if clock() - started > timeout:
            tails = []
            for pod in unhealthy:
                logs = await asyncio.to_thread(_read_log, cluster, namespace, pod.name, FAILURE_LOG_LINES)
                tails.append(replace(pod, logs_tail=logs if logs is not None else ""))
            log.error("[health] timed out with %d unhealthy pods", len(tails))
            emit(HealthFailed(unhealthy=tuple(tails)))
            return False

        await sleep(poll_interval)


async def monitor(
    cluster_factory: Callable[[], ClusterClient],
    namespace: str,
    deployments: Sequence[str],
    emit: Callable[[BaseEvent], None],
    **kwargs,
) -> bool:
    """Build the cluster client, then poll. A client that cannot be built fails at once."""
    try:
        cluster = await asyncio.to_thread(cluster_factory)
    except Exception as e:
        log.error("[health] cannot connect to cluster: %s", e)
        emit(HealthFailed(unhealthy=(), error=f"cannot connect to cluster: {e}"))
        return False
    return await poll_health(cluster, namespace, deployments, emit, **kwargs)


async def wait_for_rollout(
    cluster: ClusterClient,
    namespace: str,
    name: str,
    timeout: float,
    *,
    poll_interval: float = POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> None:
    """Wait until deployment *name* has all desired replicas ready. Raises TimeoutError."""
    started = clock()
    while True:
        if clock() - started > timeout:
            raise TimeoutError(f"timeout waiting for deployment {name} rollout")
        desired, ready = await asyncio.to_thread(cluster.deployment_replicas, namespace, name)
        if desired > 0 and ready >= desired:
            return
        await sleep(poll_interval)

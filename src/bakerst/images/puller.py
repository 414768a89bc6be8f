# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/images/puller.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from bakerst.observers.events import (
    BaseEvent,
    PullCompleted,
    PullFailed,
    PullRetrying,
    PullStarted,
)
from bakerst.utils.retry import backoff_delay

log = logging.getLogger("bakerst")

MAX_CONCURRENT_PULLS = 4
MAX_PULL_ATTEMPTS = 3

# stderr fragments that mean the local docker setup is broken; retrying won't help
LOCAL_ERROR_SIGNATURES = (
    "credential",
    "not found in path",
    "docker daemon is not running",
    "cannot connect to the docker daemon",
    "permission denied",
    "failed to run",
)

Emit = Callable[[BaseEvent], None]


class Puller(Protocol):
    async def pull(self, image: str) -> Tuple[int, str]:
        """Return (returncode, stderr)."""
        ...


class DockerPuller:
    """Runs ``docker pull`` as a subprocess."""

    def __init__(self, binary: str = "docker"):
        self.binary = binary

    async def pull(self, image: str) -> Tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary, "pull", image,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return 127, f"failed to run {self.binary}: {e}"
        _, stderr = await proc.communicate()
        return proc.returncode, stderr.decode(errors="replace")


@dataclass(frozen=True)
class PullResult:
    image: str
    ok: bool
    attempts: int
    elapsed: float = 0.0
    error: Optional[str] = None


def is_local_docker_error(stderr: str) -> bool:
    text = stderr.lower()
    return any(sig in text for sig in LOCAL_ERROR_SIGNATURES)


async def pull_one(
    index: int,
    image: str,
    emit: Emit,
    *,
    puller: Puller,
    max_attempts: int = MAX_PULL_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PullResult:
    """Pull one image with retry. Emits Started, Retrying*, then Completed or Failed."""
    emit(PullStarted(index=index, image=image))
    started = time.monotonic()

    attempt = 1
    while True:
        rc, stderr = await puller.pull(image)
        if rc == 0:
            elapsed = time.monotonic() - started
            log.debug("pulled %s in %.1fs (attempt %d)", image, elapsed, attempt)
            emit(PullCompleted(index=index, image=image, elapsed=elapsed))
            return PullResult(image=image, ok=True, attempts=attempt, elapsed=elapsed)

        err = stderr.strip()
        if is_local_docker_error(err):
            error = f"docker config error (skipping retries): {err}"
            log.warning("pull %s: %s", image, error)
            emit(PullFailed(index=index, image=image, error=error, attempt=attempt))
            return PullResult(image=image, ok=False, attempts=attempt, error=error)

        if attempt >= max_attempts:
            log.warning("pull %s failed after %d attempts: %s", image, attempt, err)
            emit(PullFailed(index=index, image=image, error=err, attempt=attempt))
            return PullResult(image=image, ok=False, attempts=attempt, error=err)

        delay = backoff_delay(attempt)
        log.debug("pull %s attempt %d failed, retrying in %.0fs: %s", image, attempt, delay, err)
        await sleep(delay)
        attempt += 1
        emit(PullRetrying(index=index, image=image, attempt=attempt))


async def pull_all(
    images: Sequence[str],
    emit: Emit,
    *,
    puller: Optional[Puller] = None,
    max_concurrent: int = MAX_CONCURRENT_PULLS,
    max_attempts: int = MAX_PULL_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List[PullResult]:
    """
    Pull every image concurrently, at most ``max_concurrent`` at a time.

    Results come back in input order; completion order is whatever the
    registry gives us.
    """
    puller = puller or DockerPuller()
    gate = asyncio.Semaphore(max_concurrent)

    async def _bounded(index: int, image: str) -> PullResult:
        async with gate:
            return await pull_one(
                index, image, emit,
                puller=puller, max_attempts=max_attempts, sleep=sleep,
            )

    log.info("pulling %d images (max %d concurrent)", len(images), max_concurrent)
    return list(await asyncio.gather(*(_bounded(i, img) for i, img in enumerate(images))))

# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/utils/retry.py
import time
import functools
from typing import Callable

class RetryError(RuntimeError):
    pass


def backoff_delay(attempt: int, base: float = 2.0) -> float:
    """Exponential backoff: ``base ** attempt`` seconds, attempt counted from 1."""
    return base ** attempt


def retry(
    *,
    retries: int,
    delay: float | None = None,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations (manifest downloads, API reads).

    retries: number of attempts
    delay: fixed seconds between attempts; None means exponential backoff
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    sleep(delay if delay is not None else backoff_delay(attempt))
            raise RetryError(f"{fn.__name__} failed after {retries} attempts: {last_exc}") from last_exc
        return wrapper
    return decorator

"""Bounded retry with exponential backoff for transient I/O."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from random import SystemRandom
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], None]


def exponential_backoff(
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    factor: float = 2.0,
    max_delay: float = 10.0,
    jitter: float = 0.2,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds); the delay is what to wait before the next attempt."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay <= 0 or max_delay <= 0:
        raise ValueError("delays must be > 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    rng = SystemRandom()
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        offset = rng.uniform(0, delay * jitter) if jitter else 0.0
        yield attempt, min(delay + offset, max_delay)
        delay = min(delay * factor, max_delay)


def retry_call(
    func: Callable[[], T],
    *,
    retry_on: tuple[type[BaseException], ...],
    max_attempts: int,
    sleep: SleepFn | None = None,
    base_delay: float = 0.5,
    label: str = "operation",
) -> T:
    """Call ``func`` until it succeeds or ``max_attempts`` is exhausted.

    Only exceptions listed in ``retry_on`` are retried; the last one is re-raised.
    """
    sleeper = sleep or time.sleep
    for attempt, delay in exponential_backoff(max_attempts=max_attempts, base_delay=base_delay):
        try:
            return func()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            logger.warning(
                "retry.attempt_failed",
                extra={
                    "operation": label,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay": round(delay, 2),
                    "error": str(exc),
                },
            )
            sleeper(delay)
    raise RuntimeError(f"{label} did not complete")  # pragma: no cover - loop always returns or raises

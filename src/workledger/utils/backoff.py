"""Exponential backoff policy shared by the optimistic-lock and AI-call retry loops."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

SleepFn = Callable[[float], Awaitable[None]]
RandomFn = Callable[[], float]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff.

    ``max_retries`` counts retries after the first attempt, so a policy with
    ``max_retries=3`` makes at most four attempts.
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    jitter_ratio: float = 0.1

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise TypeError("max_retries must be an integer")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if not 0.0 <= self.jitter_ratio < 1.0:
            raise ValueError("jitter_ratio must be in [0, 1)")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def compute_delay_ms(attempt: int, policy: RetryPolicy, *, rng: RandomFn = random.random) -> float:
    """Delay before retry number ``attempt`` (1-based): ``base * 2**(attempt-1)`` +/- jitter, capped."""

    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    delay = policy.base_delay_ms * (2 ** (attempt - 1))
    jitter = delay * policy.jitter_ratio * (rng() * 2 - 1)
    return max(0.0, min(delay + jitter, float(policy.max_delay_ms)))


async def default_sleep(delay_seconds: float) -> None:
    await asyncio.sleep(delay_seconds)


__all__ = ["RandomFn", "RetryPolicy", "SleepFn", "compute_delay_ms", "default_sleep"]

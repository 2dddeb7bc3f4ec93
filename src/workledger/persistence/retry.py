"""Compare-and-swap retry loop for optimistic-lock conflicts on records and the manifest."""

from __future__ import annotations

import inspect
import random
from collections.abc import Awaitable, Callable
from typing import Final, TypeVar

import structlog

from workledger.errors import OptimisticLockError
from workledger.utils.backoff import RandomFn, RetryPolicy, SleepFn, compute_delay_ms, default_sleep

T = TypeVar("T")

logger = structlog.get_logger(__name__)

DEFAULT_OPTIMISTIC_POLICY: Final[RetryPolicy] = RetryPolicy(
    max_retries=3,
    base_delay_ms=50,
    max_delay_ms=500,
)


async def with_optimistic_retry(
    operation: Callable[[], Awaitable[T] | T],
    policy: RetryPolicy = DEFAULT_OPTIMISTIC_POLICY,
    *,
    sleep: SleepFn = default_sleep,
    rng: RandomFn = random.random,
) -> T:
    """Run ``operation`` and re-run it from scratch when it raises ``OptimisticLockError``.

    ``operation`` must perform the whole read-modify-write cycle so every attempt sees
    fresh state. Any other exception propagates immediately; after the last attempt the
    final conflict is re-raised.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[return-value]
        except OptimisticLockError as exc:
            if attempt > policy.max_retries:
                logger.warning(
                    "optimistic_retry_exhausted",
                    resource_type=exc.resource_type,
                    resource_id=exc.resource_id,
                    attempts=attempt,
                )
                raise
            delay_ms = compute_delay_ms(attempt, policy, rng=rng)
            logger.info(
                "optimistic_retry_scheduled",
                resource_type=exc.resource_type,
                resource_id=exc.resource_id,
                attempt=attempt,
                delay_ms=round(delay_ms, 1),
            )
            await sleep(delay_ms / 1000.0)


__all__ = ["DEFAULT_OPTIMISTIC_POLICY", "with_optimistic_retry"]

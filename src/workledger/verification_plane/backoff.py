"""
workledger agent retry layer

File: src/workledger/verification_plane/backoff.py

Purpose
- Retry transient agent failures with exponential backoff and jitter.

Functional requirements
- Only failures whose error text matches a transient pattern are retried.
- An exception raised by the invoker is converted to a failed ``AgentResponse``.
- ``max_retries=3`` makes at most four attempts; the last response is returned unchanged.
- Sleep and randomness are injectable so tests run without real delays.
"""

from __future__ import annotations

import random
import re
from pathlib import Path
from typing import Final

import structlog

from workledger.constants import DEFAULT_AI_TIMEOUT_MS
from workledger.utils.backoff import RandomFn, RetryPolicy, SleepFn, compute_delay_ms, default_sleep
from workledger.verification_plane.collaborators import AgentInvoker, AgentResponse

logger = structlog.get_logger(__name__)

DEFAULT_AI_RETRY_POLICY: Final[RetryPolicy] = RetryPolicy(
    max_retries=3,
    base_delay_ms=1_000,
    max_delay_ms=10_000,
)

TRANSIENT_ERROR_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"timeout",
        r"timed out",
        r"ETIMEDOUT",
        r"ECONNRESET",
        r"ECONNREFUSED",
        r"ENETUNREACH",
        r"network",
        r"socket hang up",
        r"connection (reset|refused|closed)",
        r"temporarily unavailable",
        r"rate limit",
        r"too many requests",
        r"\b429\b",
        r"\b502\b",
        r"\b503\b",
        r"\b504\b",
        r"overloaded",
        r"capacity",
    )
)


def is_transient_error(error: str | BaseException | None) -> bool:
    if error is None:
        return False
    text = str(error)
    return any(pattern.search(text) for pattern in TRANSIENT_ERROR_PATTERNS)


async def call_with_backoff(
    invoker: AgentInvoker,
    prompt: str,
    *,
    cwd: Path,
    timeout_ms: int = DEFAULT_AI_TIMEOUT_MS,
    model: str | None = None,
    policy: RetryPolicy = DEFAULT_AI_RETRY_POLICY,
    sleep: SleepFn = default_sleep,
    rng: RandomFn = random.random,
) -> AgentResponse:
    """Invoke the agent, retrying transient failures until the policy is exhausted."""

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await invoker.call(prompt, timeout_ms=timeout_ms, cwd=cwd, model=model)
        except Exception as exc:
            response = AgentResponse(success=False, error=str(exc) or type(exc).__name__)

        if response.success:
            if attempt > 1:
                logger.info("agent_call_recovered", attempts=attempt)
            return response

        if not is_transient_error(response.error):
            return response
        if attempt > policy.max_retries:
            logger.warning("agent_retry_exhausted", attempts=attempt, error=response.error)
            return response

        delay_ms = compute_delay_ms(attempt, policy, rng=rng)
        logger.info(
            "agent_retry_scheduled",
            attempt=attempt,
            delay_ms=round(delay_ms, 1),
            error=response.error,
        )
        await sleep(delay_ms / 1000.0)


__all__ = [
    "DEFAULT_AI_RETRY_POLICY",
    "TRANSIENT_ERROR_PATTERNS",
    "call_with_backoff",
    "is_transient_error",
]

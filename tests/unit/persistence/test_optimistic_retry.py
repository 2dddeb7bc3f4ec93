"""Unit tests for the optimistic-lock retry loop."""

from __future__ import annotations

import pytest

from workledger.errors import ManifestConflictError, RecordConflictError
from workledger.persistence import with_optimistic_retry
from workledger.utils.backoff import RetryPolicy, compute_delay_ms

_POLICY = RetryPolicy(max_retries=3, base_delay_ms=50, max_delay_ms=500)


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay_seconds: float) -> None:
        self.delays.append(delay_seconds)


@pytest.mark.asyncio
async def test_retries_conflicts_with_exponential_delays() -> None:
    sleep = _RecordingSleep()
    calls = {"count": 0}

    def operation() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise RecordConflictError("auth.login", 3, 4)
        return "saved"

    result = await with_optimistic_retry(operation, _POLICY, sleep=sleep, rng=lambda: 0.5)

    assert result == "saved"
    assert calls["count"] == 3
    assert sleep.delays == pytest.approx([0.05, 0.1])


@pytest.mark.asyncio
async def test_awaits_async_operations() -> None:
    sleep = _RecordingSleep()
    calls = {"count": 0}

    async def operation() -> int:
        calls["count"] += 1
        if calls["count"] == 1:
            raise ManifestConflictError("2026-01-01T00:00:00.000Z", "2026-01-01T00:00:01.000Z")
        return 42

    assert await with_optimistic_retry(operation, _POLICY, sleep=sleep, rng=lambda: 0.5) == 42
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_retries() -> None:
    sleep = _RecordingSleep()
    calls = {"count": 0}

    def operation() -> None:
        calls["count"] += 1
        raise RecordConflictError("auth.login", 1, 2)

    with pytest.raises(RecordConflictError):
        await with_optimistic_retry(operation, _POLICY, sleep=sleep, rng=lambda: 0.5)

    assert calls["count"] == _POLICY.max_attempts
    assert sleep.delays == pytest.approx([0.05, 0.1, 0.2])


@pytest.mark.asyncio
async def test_other_errors_propagate_without_retry() -> None:
    sleep = _RecordingSleep()
    calls = {"count": 0}

    def operation() -> None:
        calls["count"] += 1
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await with_optimistic_retry(operation, _POLICY, sleep=sleep)

    assert calls["count"] == 1
    assert sleep.delays == []


def test_delay_is_capped_by_policy() -> None:
    policy = RetryPolicy(max_retries=10, base_delay_ms=100, max_delay_ms=300, jitter_ratio=0.0)

    assert [compute_delay_ms(attempt, policy) for attempt in (1, 2, 3, 4)] == [100, 200, 300, 300]

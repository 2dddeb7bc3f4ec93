"""Agent retry layer: transient errors retry with backoff, others return at once."""

from __future__ import annotations

from pathlib import Path

import pytest

from workledger.utils.backoff import RetryPolicy
from workledger.verification_plane.backoff import call_with_backoff, is_transient_error
from workledger.verification_plane.collaborators import AgentResponse

from . import FakeAgent

POLICY = RetryPolicy(max_retries=3, base_delay_ms=100, max_delay_ms=1_000, jitter_ratio=0.0)


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        ("Request timed out", True),
        ("HTTP 503 Service Unavailable", True),
        ("Rate limit exceeded", True),
        ("ECONNRESET", True),
        ("invalid api key", False),
        ("exit code 5030", False),
        (None, False),
    ],
)
def test_is_transient_error(error: str | None, expected: bool) -> None:
    assert is_transient_error(error) is expected


@pytest.mark.asyncio
async def test_transient_failures_are_retried_until_success() -> None:
    agent = FakeAgent(
        AgentResponse(success=False, error="rate limit"),
        AgentResponse(success=False, error="socket hang up"),
        AgentResponse(success=True, output="{}", agent_used="fake"),
    )
    sleeps = _Sleeps()

    response = await call_with_backoff(agent, "prompt", cwd=Path("."), policy=POLICY, sleep=sleeps)

    assert response.success is True
    assert len(agent.prompts) == 3
    assert sleeps.delays == [pytest.approx(0.1), pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried() -> None:
    agent = FakeAgent(AgentResponse(success=False, error="permission denied"))
    sleeps = _Sleeps()

    response = await call_with_backoff(agent, "prompt", cwd=Path("."), policy=POLICY, sleep=sleeps)

    assert response.error == "permission denied"
    assert len(agent.prompts) == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    agent = FakeAgent(AgentResponse(success=False, error="overloaded"))
    sleeps = _Sleeps()

    response = await call_with_backoff(agent, "prompt", cwd=Path("."), policy=POLICY, sleep=sleeps)

    assert response.success is False
    assert len(agent.prompts) == 4
    assert len(sleeps.delays) == 3


@pytest.mark.asyncio
async def test_invoker_exception_becomes_failed_response() -> None:
    agent = FakeAgent(ValueError("agent binary missing"))

    response = await call_with_backoff(agent, "prompt", cwd=Path("."), policy=POLICY, sleep=_Sleeps())

    assert response.success is False
    assert response.error == "agent binary missing"

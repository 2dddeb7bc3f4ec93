"""Async concurrency primitives used by the verification plane."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


@dataclass(frozen=True, slots=True)
class Settled(Generic[T]):
    """Outcome of one awaited job: either a value or the exception it raised."""

    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run coroutines with bounded concurrency and settle every one of them.

    A failing job never aborts its siblings; its exception is captured in the
    matching ``Settled`` entry. Results are returned in submission order.
    """

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._token = self.cancel_token or CancellationToken()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def settle_all(self, coroutines: Iterable[Awaitable[T]]) -> list[Settled[T]]:
        pending = list(coroutines)
        if self._token.is_cancelled:
            for item in pending:
                _close_unscheduled_coroutine(item)
            raise asyncio.CancelledError("operation cancelled")

        outcomes = await asyncio.gather(
            *(self._run_one(coroutine) for coroutine in pending),
            return_exceptions=True,
        )

        settled: list[Settled[T]] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                settled.append(Settled(index=index, error=outcome))
            else:
                settled.append(Settled(index=index, value=outcome))
        return settled

    async def _run_one(self, coroutine: Awaitable[T]) -> T:
        async with self._semaphore:
            if self._token.is_cancelled:
                _close_unscheduled_coroutine(coroutine)
                raise asyncio.CancelledError("operation cancelled")
            return await coroutine


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Raw coroutine objects that never get scheduled must be closed explicitly.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "Settled",
    "WorkerPool",
]

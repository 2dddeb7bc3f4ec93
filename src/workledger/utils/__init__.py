"""Utility exports for filesystem, backoff, and concurrency helpers."""

from workledger.utils.backoff import RetryPolicy, SleepFn, compute_delay_ms, default_sleep
from workledger.utils.concurrency import CancellationToken, Settled, WorkerPool
from workledger.utils.fs import atomic_write, is_within, lexical_resolve, read_text_or_none

__all__ = [
    "CancellationToken",
    "RetryPolicy",
    "Settled",
    "SleepFn",
    "WorkerPool",
    "atomic_write",
    "compute_delay_ms",
    "default_sleep",
    "is_within",
    "lexical_resolve",
    "read_text_or_none",
]

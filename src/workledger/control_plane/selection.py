"""Deterministic next-record selection with decomposition gating."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

from workledger.constants import GATING_ID_SUFFIX, GATING_TAG
from workledger.domain.models import ACTIONABLE_STATUSES, Record, RecordStatus

STATUS_ORDER: Final[Mapping[RecordStatus, int]] = {
    RecordStatus.NEEDS_REVIEW: 0,
    RecordStatus.FAILING: 1,
    RecordStatus.BLOCKED: 2,
    RecordStatus.FAILED: 3,
    RecordStatus.PASSING: 4,
    RecordStatus.DEPRECATED: 5,
}

_ACTIONABLE: Final[frozenset[RecordStatus]] = frozenset(ACTIONABLE_STATUSES)


@dataclass(frozen=True, slots=True)
class GatingBlock:
    """Gating records that are holding back ``waiting`` ordinary actionable records."""

    count: int
    ids: tuple[str, ...]
    waiting: int


@dataclass(frozen=True, slots=True)
class Selection:
    record: Record | None
    blocked_by: GatingBlock | None = None


def is_gating(record: Record | str) -> bool:
    """Either the ``.BREAKDOWN`` id suffix or a ``breakdown`` tag marks a gating record."""

    record_id = record if isinstance(record, str) else record.id
    by_id = record_id.upper().endswith(GATING_ID_SUFFIX)
    if isinstance(record, str):
        return by_id
    return by_id or any(tag.lower() == GATING_TAG for tag in record.tags)


def sort_key(record: Record) -> tuple[int, int]:
    return (STATUS_ORDER[record.status], record.priority)


def select_next(records: Iterable[Record]) -> Record | None:
    """Best actionable record: ``needs_review`` before ``failing``, then lowest priority number."""

    candidates = sorted((r for r in records if r.status in _ACTIONABLE), key=sort_key)
    return candidates[0] if candidates else None


def select_next_with_gating(records: Iterable[Record]) -> Selection:
    """Like ``select_next`` but actionable gating records always win over ordinary ones."""

    candidates = [r for r in records if r.status in _ACTIONABLE]
    if not candidates:
        return Selection(record=None)

    gating = sorted((r for r in candidates if is_gating(r)), key=sort_key)
    ordinary = sorted((r for r in candidates if not is_gating(r)), key=sort_key)

    if gating:
        blocked_by = None
        if ordinary:
            blocked_by = GatingBlock(
                count=len(gating),
                ids=tuple(r.id for r in gating),
                waiting=len(ordinary),
            )
        return Selection(record=gating[0], blocked_by=blocked_by)
    return Selection(record=ordinary[0])


def find_by_id(records: Iterable[Record], record_id: str) -> Record | None:
    for record in records:
        if record.id == record_id:
            return record
    return None


def find_dependents(records: Iterable[Record], record_id: str) -> list[Record]:
    return [r for r in records if record_id in r.depends_on]


def find_same_module(records: Iterable[Record], module: str, exclude_id: str) -> list[Record]:
    return [r for r in records if r.module == module and r.id != exclude_id]


def group_by_module(records: Iterable[Record]) -> dict[str, list[Record]]:
    groups: dict[str, list[Record]] = {}
    for record in records:
        groups.setdefault(record.module, []).append(record)
    return groups


def status_counts(
    records: Iterable[Record],
    *,
    exclude_deprecated: bool = True,
) -> dict[RecordStatus, int]:
    counts = dict.fromkeys(RecordStatus, 0)
    for record in records:
        if exclude_deprecated and record.status is RecordStatus.DEPRECATED:
            continue
        counts[record.status] += 1
    return counts


def completion_percent(records: Iterable[Record]) -> int:
    """Share of non-deprecated records that are passing, rounded to a whole percent."""

    active = [r for r in records if r.status is not RecordStatus.DEPRECATED]
    if not active:
        return 0
    passing = sum(1 for r in active if r.status is RecordStatus.PASSING)
    # Half-up rounding; ``round`` would use banker's rounding.
    return int(passing * 100 / len(active) + 0.5)


__all__ = [
    "STATUS_ORDER",
    "GatingBlock",
    "Selection",
    "completion_percent",
    "find_by_id",
    "find_dependents",
    "find_same_module",
    "group_by_module",
    "is_gating",
    "select_next",
    "select_next_with_gating",
    "sort_key",
    "status_counts",
]

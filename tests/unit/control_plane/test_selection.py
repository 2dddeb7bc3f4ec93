"""
workledger — unit tests for next-record selection

File: tests/unit/control_plane/test_selection.py

Purpose
- Validate deterministic selection ordering, decomposition gating, and rollup helpers.

What this test file should cover
- needs_review before failing, then lowest priority number; non-actionable never selected.
- Gating records (``.BREAKDOWN`` suffix or ``breakdown`` tag) win and report who waits.
- Property: the selected record always has the minimal sort key among actionable records.
"""

from __future__ import annotations

from workledger.control_plane import (
    completion_percent,
    find_by_id,
    find_dependents,
    find_same_module,
    group_by_module,
    is_gating,
    select_next,
    select_next_with_gating,
    status_counts,
)
from workledger.control_plane.selection import sort_key
from workledger.domain.models import Record, RecordStatus

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


def _record(
    record_id: str,
    status: RecordStatus = RecordStatus.FAILING,
    priority: int = 0,
    *,
    tags: tuple[str, ...] = (),
    depends_on: tuple[str, ...] = (),
) -> Record:
    return Record(
        id=record_id,
        description=record_id,
        module=record_id.split(".")[0],
        status=status,
        priority=priority,
        tags=tags,
        depends_on=depends_on,
    )


def test_select_next_prefers_needs_review_then_priority() -> None:
    records = [
        _record("a.low", RecordStatus.FAILING, 1),
        _record("a.review", RecordStatus.NEEDS_REVIEW, 9),
        _record("a.urgent", RecordStatus.FAILING, 0),
    ]

    selected = select_next(records)

    assert selected is not None
    assert selected.id == "a.review"


def test_select_next_ignores_non_actionable_statuses() -> None:
    records = [
        _record("a.done", RecordStatus.PASSING),
        _record("a.blocked", RecordStatus.BLOCKED),
        _record("a.gone", RecordStatus.DEPRECATED),
        _record("a.dead", RecordStatus.FAILED),
    ]

    assert select_next(records) is None
    assert select_next_with_gating(records).record is None


def test_select_next_ties_keep_input_order() -> None:
    records = [_record("a.first", priority=2), _record("a.second", priority=2)]

    selected = select_next(records)

    assert selected is not None
    assert selected.id == "a.first"


def test_gating_record_wins_and_reports_waiting_records() -> None:
    records = [
        _record("auth.login", RecordStatus.NEEDS_REVIEW, 0),
        _record("auth.BREAKDOWN", RecordStatus.FAILING, 5),
        _record("api.split", RecordStatus.FAILING, 1, tags=("Breakdown",)),
        _record("api.health", RecordStatus.FAILING, 2),
    ]

    selection = select_next_with_gating(records)

    assert selection.record is not None
    assert selection.record.id == "api.split"
    assert selection.blocked_by is not None
    assert selection.blocked_by.count == 2
    assert selection.blocked_by.ids == ("api.split", "auth.BREAKDOWN")
    assert selection.blocked_by.waiting == 2


def test_gating_only_has_no_blocked_by() -> None:
    selection = select_next_with_gating([_record("auth.breakdown")])

    assert selection.record is not None
    assert selection.blocked_by is None


def test_without_gating_records_falls_back_to_plain_order() -> None:
    records = [_record("a.two", priority=2), _record("a.one", priority=1)]

    selection = select_next_with_gating(records)

    assert selection.record is not None
    assert selection.record.id == "a.one"
    assert selection.blocked_by is None


def test_is_gating_accepts_ids_and_records() -> None:
    assert is_gating("auth.breakdown") is True
    assert is_gating("auth.login") is False
    assert is_gating(_record("auth.login", tags=("breakdown",))) is True


def test_lookup_helpers() -> None:
    records = [
        _record("auth.login"),
        _record("auth.logout", depends_on=("auth.login",)),
        _record("api.health", depends_on=("auth.login",)),
    ]

    assert find_by_id(records, "api.health") is records[2]
    assert find_by_id(records, "api.missing") is None
    assert [r.id for r in find_dependents(records, "auth.login")] == ["auth.logout", "api.health"]
    assert [r.id for r in find_same_module(records, "auth", "auth.login")] == ["auth.logout"]
    assert list(group_by_module(records)) == ["auth", "api"]


def test_status_counts_and_completion_percent_exclude_deprecated() -> None:
    records = [
        _record("a.one", RecordStatus.PASSING),
        _record("a.two", RecordStatus.PASSING),
        _record("a.three", RecordStatus.FAILING),
        _record("a.four", RecordStatus.DEPRECATED),
    ]

    counts = status_counts(records)

    assert counts[RecordStatus.PASSING] == 2
    assert counts[RecordStatus.DEPRECATED] == 0
    assert status_counts(records, exclude_deprecated=False)[RecordStatus.DEPRECATED] == 1
    assert completion_percent(records) == 67
    assert completion_percent([]) == 0


def test_completion_percent_rounds_half_up() -> None:
    records = [_record("a.pass", RecordStatus.PASSING)] + [
        _record(f"a.fail{index}") for index in range(7)
    ]

    assert completion_percent(records) == 13


if _HYPOTHESIS_AVAILABLE:

    @given(
        specs=st.lists(
            st.tuples(st.sampled_from(list(RecordStatus)), st.integers(min_value=0, max_value=5)),
            max_size=12,
        )
    )
    @settings(max_examples=50, derandomize=True, deadline=None)
    def test_property_select_next_returns_minimal_actionable(
        specs: list[tuple[RecordStatus, int]],
    ) -> None:
        records = [
            _record(f"m.r{index}", status, priority)
            for index, (status, priority) in enumerate(specs)
        ]
        actionable = [r for r in records if r.is_actionable]

        selected = select_next(records)

        if not actionable:
            assert selected is None
        else:
            assert selected is not None
            assert sort_key(selected) == min(sort_key(r) for r in actionable)

"""Control-plane exports: record selection."""

from workledger.control_plane.selection import (
    STATUS_ORDER,
    GatingBlock,
    Selection,
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
    "status_counts",
]

"""Domain model exports."""

from workledger.domain.models import (
    ACTIONABLE_STATUSES,
    JSONScalar,
    JSONValue,
    Manifest,
    ManifestEntry,
    Record,
    RecordOrigin,
    RecordStatus,
    TaskType,
    Verdict,
    VerificationSummary,
    utc_now_iso,
)

__all__ = [
    "ACTIONABLE_STATUSES",
    "JSONScalar",
    "JSONValue",
    "Manifest",
    "ManifestEntry",
    "Record",
    "RecordOrigin",
    "RecordStatus",
    "TaskType",
    "Verdict",
    "VerificationSummary",
    "utc_now_iso",
]

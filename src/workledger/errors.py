"""
workledger error taxonomy

File: src/workledger/errors.py

Purpose
- One exception hierarchy shared by the record store, manifest, and verification plane.

Functional requirements
- Every error exposes a machine-checkable ``kind`` tag.
- Conflict errors carry both the expected and the observed value so callers can reload and retry.
- Security violations subclass ``PermissionError``; validation failures subclass ``ValueError``.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Machine-checkable failure categories."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    SECURITY = "security_violation"
    TRANSIENT = "transient_external"
    DETERMINISTIC = "deterministic"


class WorkledgerError(Exception):
    """Base class for every error raised by this package."""

    kind: ErrorKind = ErrorKind.DETERMINISTIC


class RecordNotFoundError(WorkledgerError, LookupError):
    """Raised when a record is required but neither its file nor its manifest entry exists."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"record not found: {record_id}")


class OptimisticLockError(WorkledgerError):
    """A write observed state that changed since it was read."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, *, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class RecordConflictError(OptimisticLockError):
    """On-disk record version differs from the version the caller expected."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int) -> None:
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"record {record_id!r} was modified concurrently: "
            f"expected version {expected_version}, found {actual_version}",
            resource_type="record",
            resource_id=record_id,
        )


class ManifestConflictError(OptimisticLockError):
    """Manifest ``updatedAt`` changed between load and save."""

    def __init__(self, expected_updated_at: str, actual_updated_at: str) -> None:
        self.expected_updated_at = expected_updated_at
        self.actual_updated_at = actual_updated_at
        super().__init__(
            "manifest was modified concurrently: "
            f"expected updatedAt {expected_updated_at}, found {actual_updated_at}",
            resource_type="manifest",
            resource_id="index",
        )


class ValidationFailure(WorkledgerError, ValueError):
    """Malformed record metadata, manifest content, or strategy configuration."""

    kind = ErrorKind.VALIDATION


class RecordFormatError(ValidationFailure):
    """Record file cannot be parsed into a valid record."""


class ManifestFormatError(ValidationFailure):
    """Manifest file is not a valid manifest document."""


class StrategyConfigError(ValidationFailure):
    """Declarative strategy configuration is malformed."""


class UnregisteredStrategyError(ValidationFailure):
    """No executor is registered for a strategy type tag."""

    def __init__(self, strategy_type: str, registered: tuple[str, ...]) -> None:
        self.strategy_type = strategy_type
        self.registered = registered
        known = ", ".join(registered)
        super().__init__(
            f"no executor registered for strategy type {strategy_type!r}; registered: [{known}]"
        )


class SecurityViolationError(WorkledgerError, PermissionError):
    """Dangerous command, path escape, or disallowed network target."""

    kind = ErrorKind.SECURITY


class TransientExternalError(WorkledgerError):
    """External call failed in a way that a retry may fix."""

    kind = ErrorKind.TRANSIENT


__all__ = [
    "ErrorKind",
    "ManifestConflictError",
    "ManifestFormatError",
    "OptimisticLockError",
    "RecordConflictError",
    "RecordFormatError",
    "RecordNotFoundError",
    "SecurityViolationError",
    "StrategyConfigError",
    "TransientExternalError",
    "UnregisteredStrategyError",
    "ValidationFailure",
    "WorkledgerError",
]

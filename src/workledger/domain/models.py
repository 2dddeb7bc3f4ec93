"""Dataclass domain models for records, manifests, and verification summaries."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import NoReturn, TypeVar

from workledger.constants import DEFAULT_PRIORITY, DEFAULT_VERSION, MANIFEST_SCHEMA_VERSION
from workledger.errors import ManifestFormatError, RecordFormatError

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=StrEnum)

_MAX_TEXT = 8192
_MAX_JSON_DEPTH = 16


class RecordStatus(StrEnum):
    FAILING = "failing"
    PASSING = "passing"
    BLOCKED = "blocked"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"
    DEPRECATED = "deprecated"


class RecordOrigin(StrEnum):
    INIT_AUTO = "init-auto"
    INIT_FROM_ROUTES = "init-from-routes"
    INIT_FROM_TESTS = "init-from-tests"
    MANUAL = "manual"
    REPLAN = "replan"


class TaskType(StrEnum):
    CODE = "code"
    OPS = "ops"
    DATA = "data"
    INFRA = "infra"
    MANUAL = "manual"


class Verdict(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    NEEDS_REVIEW = "needs_review"


ACTIONABLE_STATUSES: tuple[RecordStatus, ...] = (
    RecordStatus.NEEDS_REVIEW,
    RecordStatus.FAILING,
)


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and ``Z`` suffix."""

    now = datetime.now(UTC)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


@dataclass(frozen=True, slots=True)
class VerificationSummary:
    """Last verification outcome stored in a record's metadata block."""

    verified_at: str
    verdict: Verdict
    verified_by: str
    summary: str = ""
    commit_hash: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "verified_at", _as_str(self.verified_at, "verification.verifiedAt")
        )
        object.__setattr__(
            self, "verdict", _as_enum(Verdict, self.verdict, "verification.verdict")
        )
        object.__setattr__(
            self, "verified_by", _as_str(self.verified_by, "verification.verifiedBy")
        )
        if not isinstance(self.summary, str):
            _fail("verification.summary", f"expected string, got {type(self.summary).__name__}")
        object.__setattr__(
            self,
            "commit_hash",
            _as_optional_str(self.commit_hash, "verification.commitHash"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "verifiedAt": self.verified_at,
            "verdict": self.verdict.value,
            "verifiedBy": self.verified_by,
        }
        if self.commit_hash is not None:
            out["commitHash"] = self.commit_hash
        out["summary"] = self.summary
        return out

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> VerificationSummary:
        if not isinstance(payload, Mapping):
            _fail("verification", f"expected object, got {type(payload).__name__}")
        return cls(
            verified_at=_coerce_timestamp(payload.get("verifiedAt"), "verification.verifiedAt"),
            verdict=payload.get("verdict"),  # type: ignore[arg-type]
            verified_by=payload.get("verifiedBy"),  # type: ignore[arg-type]
            summary=str(payload.get("summary", "") or ""),
            commit_hash=payload.get("commitHash"),  # type: ignore[arg-type]
        )


@dataclass(slots=True)
class Record:
    """One trackable unit of work.

    ``body`` holds the raw markdown after the metadata block. It is empty for
    records that were never written, in which case a fresh body is generated
    from ``description``, ``acceptance`` and ``notes``.
    """

    id: str
    description: str
    module: str
    priority: int = DEFAULT_PRIORITY
    status: RecordStatus = RecordStatus.FAILING
    acceptance: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()
    supersedes: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    version: int = DEFAULT_VERSION
    origin: RecordOrigin = RecordOrigin.MANUAL
    notes: str = ""
    verification: VerificationSummary | None = None
    body: str = ""
    task_type: TaskType | None = None
    e2e_tags: tuple[str, ...] = ()
    test_requirements: dict[str, JSONValue] | None = None
    test_files: tuple[str, ...] = ()
    verification_strategies: tuple[dict[str, JSONValue], ...] = ()
    affected_by: tuple[str, ...] = ()
    file_path: str | None = None

    def __post_init__(self) -> None:
        self.id = _as_str(self.id, "Record.id", max_len=512)
        if any(not part for part in self.id.split(".")):
            _fail("Record.id", f"invalid dotted identifier {self.id!r}")
        if not isinstance(self.description, str):
            _fail("Record.description", "expected string")
        self.description = self.description.strip()
        self.module = _as_str(self.module, "Record.module", max_len=256)
        self.priority = _as_int(self.priority, "Record.priority")
        self.status = _as_enum(RecordStatus, self.status, "Record.status")
        self.acceptance = _as_str_tuple(self.acceptance, "Record.acceptance", unique=False)
        self.depends_on = _as_str_tuple(self.depends_on, "Record.depends_on")
        self.supersedes = _as_str_tuple(self.supersedes, "Record.supersedes")
        self.tags = _as_str_tuple(self.tags, "Record.tags")
        self.version = _as_int(self.version, "Record.version", minimum=1)
        self.origin = _as_enum(RecordOrigin, self.origin, "Record.origin")
        if not isinstance(self.notes, str):
            _fail("Record.notes", "expected string")
        if self.verification is not None and not isinstance(
            self.verification, VerificationSummary
        ):
            _fail("Record.verification", "must be VerificationSummary")
        if not isinstance(self.body, str):
            _fail("Record.body", "expected string")
        if self.task_type is not None:
            self.task_type = _as_enum(TaskType, self.task_type, "Record.task_type")
        self.e2e_tags = _as_str_tuple(self.e2e_tags, "Record.e2e_tags")
        if self.test_requirements is not None:
            self.test_requirements = _as_json_object(
                self.test_requirements, "Record.test_requirements"
            )
        self.test_files = _as_str_tuple(self.test_files, "Record.test_files")
        self.verification_strategies = tuple(
            _as_json_object(item, f"Record.verification_strategies[{index}]")
            for index, item in enumerate(self.verification_strategies)
        )
        self.affected_by = _as_str_tuple(self.affected_by, "Record.affected_by")
        self.file_path = _as_optional_str(self.file_path, "Record.file_path", max_len=2048)

    @property
    def is_actionable(self) -> bool:
        return self.status in ACTIONABLE_STATUSES


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """Rollup of one record's key fields inside the manifest."""

    status: RecordStatus
    priority: int
    module: str
    description: str
    file_path: str | None = None

    def __post_init__(self) -> None:
        status = _as_enum(RecordStatus, self.status, "ManifestEntry.status", ManifestFormatError)
        priority = _as_int(self.priority, "ManifestEntry.priority", exc=ManifestFormatError)
        module = _as_str(self.module, "ManifestEntry.module", exc=ManifestFormatError)
        object.__setattr__(self, "status", status)
        object.__setattr__(self, "priority", priority)
        object.__setattr__(self, "module", module)
        if not isinstance(self.description, str):
            _fail("ManifestEntry.description", "expected string", ManifestFormatError)
        if self.file_path is not None:
            object.__setattr__(
                self,
                "file_path",
                _as_str(self.file_path, "ManifestEntry.filePath", exc=ManifestFormatError),
            )

    @classmethod
    def from_record(cls, record: Record) -> ManifestEntry:
        return cls(
            status=record.status,
            priority=record.priority,
            module=record.module,
            description=record.description,
            file_path=record.file_path,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "status": self.status.value,
            "priority": self.priority,
            "module": self.module,
            "description": self.description,
        }
        if self.file_path is not None:
            out["filePath"] = self.file_path
        return out

    @classmethod
    def from_dict(cls, payload: Mapping[str, object], path: str) -> ManifestEntry:
        if not isinstance(payload, Mapping):
            _fail(path, f"expected object, got {type(payload).__name__}", ManifestFormatError)
        return cls(
            status=payload.get("status"),  # type: ignore[arg-type]
            priority=payload.get("priority"),  # type: ignore[arg-type]
            module=payload.get("module"),  # type: ignore[arg-type]
            description=payload.get("description", ""),  # type: ignore[arg-type]
            file_path=payload.get("filePath"),  # type: ignore[arg-type]
        )


@dataclass(slots=True)
class Manifest:
    """Flat JSON rollup of every record, kept as a rebuildable cache."""

    updated_at: str
    records: dict[str, ManifestEntry] = field(default_factory=dict)
    metadata: dict[str, JSONValue] = field(default_factory=dict)
    version: str = MANIFEST_SCHEMA_VERSION
    loaded_at: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "version": self.version,
            "updatedAt": self.updated_at,
            "metadata": dict(self.metadata),
            "features": {key: self.records[key].to_dict() for key in self.records},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> Manifest:
        if not isinstance(payload, Mapping):
            _fail("manifest", f"expected object, got {type(payload).__name__}", ManifestFormatError)
        updated_at = payload.get("updatedAt")
        if not isinstance(updated_at, str) or not updated_at.strip():
            _fail("manifest.updatedAt", "expected non-empty string", ManifestFormatError)
        raw_records = payload.get("features", {})
        if not isinstance(raw_records, Mapping):
            _fail("manifest.features", "expected object", ManifestFormatError)
        records = {
            str(key): ManifestEntry.from_dict(value, f"manifest.features.{key}")
            for key, value in raw_records.items()
        }
        metadata = payload.get("metadata", {})
        if not isinstance(metadata, Mapping):
            _fail("manifest.metadata", "expected object", ManifestFormatError)
        version = payload.get("version", MANIFEST_SCHEMA_VERSION)
        return cls(
            updated_at=updated_at,
            records=records,
            metadata=_as_json_object(metadata, "manifest.metadata", ManifestFormatError),
            version=str(version),
        )


def _fail(path: str, message: str, exc: type[ValueError] = RecordFormatError) -> NoReturn:
    raise exc(f"{path}: {message}")


def _as_str(
    value: object,
    path: str,
    *,
    max_len: int = _MAX_TEXT,
    exc: type[ValueError] = RecordFormatError,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}", exc)
    parsed = value.strip()
    if not parsed:
        _fail(path, "must not be empty", exc)
    if len(parsed) > max_len:
        _fail(path, f"must be <= {max_len} characters", exc)
    return parsed


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_int(
    value: object,
    path: str,
    *,
    minimum: int | None = None,
    exc: type[ValueError] = RecordFormatError,
) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}", exc)
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}", exc)
    return value


def _as_enum(
    enum_type: type[TEnum],
    value: object,
    path: str,
    exc: type[ValueError] = RecordFormatError,
) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected {enum_type.__name__} or string, got {type(value).__name__}", exc)
    try:
        return enum_type(value.strip())
    except ValueError:
        allowed = ", ".join(item.value for item in enum_type)
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}", exc)


def _as_str_tuple(value: object, path: str, *, unique: bool = True) -> tuple[str, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected sequence, got {type(value).__name__}")
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]")
        if unique and parsed in out:
            continue
        out.append(parsed)
    return tuple(out)


def _coerce_timestamp(value: object, path: str) -> str:
    # Unquoted YAML timestamps load as datetime objects.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat().replace("+00:00", "Z")
    return _as_str(value, path)


def _as_json_value(
    value: object,
    path: str,
    *,
    depth: int = 0,
    exc: type[ValueError] = RecordFormatError,
) -> JSONValue:
    if depth > _MAX_JSON_DEPTH:
        _fail(path, f"JSON nesting exceeds max depth {_MAX_JSON_DEPTH}", exc)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite", exc)
        return value
    if isinstance(value, datetime):
        return _coerce_timestamp(value, path)
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [
            _as_json_value(item, f"{path}[{index}]", depth=depth + 1, exc=exc)
            for index, item in enumerate(value)
        ]
    if isinstance(value, Mapping):
        parsed: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, f"object key must be string, got {type(key).__name__}", exc)
            parsed[key] = _as_json_value(item, f"{path}.{key}", depth=depth + 1, exc=exc)
        return parsed
    _fail(path, f"value is not JSON-serializable ({type(value).__name__})", exc)


def _as_json_object(
    value: object,
    path: str,
    exc: type[ValueError] = RecordFormatError,
) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path, exc=exc)
    if not isinstance(parsed, dict):
        _fail(path, "expected JSON object", exc)
    return parsed


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

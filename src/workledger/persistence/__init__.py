"""Record file persistence: codec, path resolution, record store, and manifest."""

from workledger.persistence.manifest import ManifestStore, create_empty, stats, upsert_entry
from workledger.persistence.paths import derive_record_path, resolve_record_path
from workledger.persistence.records import RecordStore
from workledger.persistence.retry import DEFAULT_OPTIMISTIC_POLICY, with_optimistic_retry

__all__ = [
    "DEFAULT_OPTIMISTIC_POLICY",
    "ManifestStore",
    "RecordStore",
    "create_empty",
    "derive_record_path",
    "resolve_record_path",
    "stats",
    "upsert_entry",
    "with_optimistic_retry",
]

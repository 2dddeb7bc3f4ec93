"""Stable constants shared across the record store and verification plane."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
MANIFEST_SCHEMA_VERSION: Final[str] = "2.0.0"
VERIFICATION_INDEX_SCHEMA_VERSION: Final[str] = "1.0.0"

# Default on-disk layout (relative to the project root unless overridden by config).
TASKS_DIR: Final[PurePosixPath] = PurePosixPath("ai/tasks")
MANIFEST_FILE: Final[str] = "index.json"
RECORD_SUFFIX: Final[str] = ".md"
VERIFICATION_DIR: Final[PurePosixPath] = PurePosixPath("ai/verification")
VERIFICATION_INDEX_FILE: Final[str] = "index.json"

# Record defaults applied while parsing metadata.
DEFAULT_PRIORITY: Final[int] = 0
DEFAULT_VERSION: Final[int] = 1

# Gating convention for decomposition records.
GATING_ID_SUFFIX: Final[str] = ".BREAKDOWN"
GATING_TAG: Final[str] = "breakdown"

# Strategy defaults, all in milliseconds.
DEFAULT_TEST_TIMEOUT_MS: Final[int] = 60_000
DEFAULT_E2E_TIMEOUT_MS: Final[int] = 120_000
DEFAULT_SCRIPT_TIMEOUT_MS: Final[int] = 60_000
DEFAULT_COMMAND_TIMEOUT_MS: Final[int] = 60_000
DEFAULT_HTTP_TIMEOUT_MS: Final[int] = 30_000
DEFAULT_AI_TIMEOUT_MS: Final[int] = 300_000
DEFAULT_MIN_CONFIDENCE: Final[float] = 0.7
MAX_STREAM_OUTPUT_CHARS: Final[int] = 2_000
MAX_DIFF_CHARS: Final[int] = 10_000

DEFAULT_ALLOWED_HOSTS: Final[tuple[str, ...]] = ("localhost", "127.0.0.1", "::1")

# Closed set of verification strategy type tags.
STRATEGY_TYPES: Final[tuple[str, ...]] = (
    "test",
    "e2e",
    "script",
    "command",
    "http",
    "file",
    "manual",
    "ai",
    "composite",
)

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_AI_TIMEOUT_MS",
    "DEFAULT_ALLOWED_HOSTS",
    "DEFAULT_COMMAND_TIMEOUT_MS",
    "DEFAULT_E2E_TIMEOUT_MS",
    "DEFAULT_HTTP_TIMEOUT_MS",
    "DEFAULT_MIN_CONFIDENCE",
    "DEFAULT_PRIORITY",
    "DEFAULT_SCRIPT_TIMEOUT_MS",
    "DEFAULT_TEST_TIMEOUT_MS",
    "DEFAULT_VERSION",
    "GATING_ID_SUFFIX",
    "GATING_TAG",
    "MANIFEST_FILE",
    "MANIFEST_SCHEMA_VERSION",
    "MAX_DIFF_CHARS",
    "MAX_STREAM_OUTPUT_CHARS",
    "RECORD_SUFFIX",
    "STRATEGY_TYPES",
    "TASKS_DIR",
    "VERIFICATION_DIR",
    "VERIFICATION_INDEX_FILE",
    "VERIFICATION_INDEX_SCHEMA_VERSION",
]

"""Configuration: defaults, validation, and layered loading."""

from workledger.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    executor_settings,
    load_config,
    logging_config,
    optimistic_policy,
)
from workledger.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    WorkledgerConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "WorkledgerConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "executor_settings",
    "load_config",
    "logging_config",
    "merge_config",
    "optimistic_policy",
    "validate_config",
]

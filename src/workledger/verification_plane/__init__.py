"""Verification plane exports: strategy registry, check runner, and run artifacts."""

from workledger.verification_plane.artifacts import VerificationArtifactStore
from workledger.verification_plane.backoff import call_with_backoff, is_transient_error
from workledger.verification_plane.collaborators import (
    AgentInvoker,
    AgentResponse,
    Capabilities,
    CapabilityDetector,
    ConsoleInput,
    E2ECapability,
    GitHelper,
    NonInteractiveInput,
    StaticCapabilities,
    UserInput,
)
from workledger.verification_plane.runner import (
    Check,
    CheckOutcome,
    VerificationRun,
    aggregate_verdict,
    resolve_strategies,
    run_checks,
    verify_record,
)
from workledger.verification_plane.strategies import (
    ExecutorSettings,
    StrategyRegistry,
    StrategyResult,
    build_default_registry,
    parse_strategy_config,
)

__all__ = [
    "AgentInvoker",
    "AgentResponse",
    "Capabilities",
    "CapabilityDetector",
    "Check",
    "CheckOutcome",
    "ConsoleInput",
    "E2ECapability",
    "ExecutorSettings",
    "GitHelper",
    "NonInteractiveInput",
    "StaticCapabilities",
    "StrategyRegistry",
    "StrategyResult",
    "UserInput",
    "VerificationArtifactStore",
    "VerificationRun",
    "aggregate_verdict",
    "build_default_registry",
    "call_with_backoff",
    "is_transient_error",
    "parse_strategy_config",
    "resolve_strategies",
    "run_checks",
    "verify_record",
]

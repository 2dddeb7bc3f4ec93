"""
workledger verification strategies

File: src/workledger/verification_plane/strategies/__init__.py

Purpose
- Export strategy configs, executors, and the registry wiring used by the runner.

Functional requirements
- ``build_default_registry`` registers one executor per strategy type tag.
- The composite executor dispatches through the same registry it is registered in.
"""

from __future__ import annotations

import httpx

from workledger.verification_plane.collaborators import (
    AgentInvoker,
    CapabilityDetector,
    GitHelper,
    UserInput,
)
from workledger.verification_plane.process import CommandExecutor
from workledger.verification_plane.prompts import PromptTemplateEngine
from workledger.verification_plane.strategies.ai import (
    AiJudgement,
    AiStrategyExecutor,
    CriterionJudgement,
    format_ai_output,
    parse_ai_response,
)
from workledger.verification_plane.strategies.base import (
    AiStrategyConfig,
    BaseStrategyConfig,
    CommandStrategyConfig,
    CompositeStrategyConfig,
    E2EStrategyConfig,
    ExecutorSettings,
    FileCheck,
    FileStrategyConfig,
    HttpStrategyConfig,
    JsonAssertion,
    ManualStrategyConfig,
    ScriptStrategyConfig,
    StrategyConfig,
    StrategyExecutor,
    StrategyRegistry,
    StrategyResult,
    TestStrategyConfig,
    parse_strategy_config,
    parse_strategy_configs,
)
from workledger.verification_plane.strategies.command import CommandStrategyExecutor
from workledger.verification_plane.strategies.composite import CompositeStrategyExecutor
from workledger.verification_plane.strategies.e2e import E2EStrategyExecutor
from workledger.verification_plane.strategies.file import FileStrategyExecutor
from workledger.verification_plane.strategies.http import HttpStrategyExecutor
from workledger.verification_plane.strategies.manual import ManualStrategyExecutor
from workledger.verification_plane.strategies.script import ScriptStrategyExecutor
from workledger.verification_plane.strategies.unit import TestStrategyExecutor


def build_default_registry(
    *,
    capabilities: CapabilityDetector,
    agent: AgentInvoker,
    git: GitHelper | None = None,
    user_input: UserInput | None = None,
    settings: ExecutorSettings | None = None,
    runner: CommandExecutor | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    prompts: PromptTemplateEngine | None = None,
) -> StrategyRegistry:
    """Registry with every built-in executor wired to the given collaborators."""

    settings = settings if settings is not None else ExecutorSettings()
    registry = StrategyRegistry()
    registry.register(TestStrategyExecutor(capabilities, runner=runner, settings=settings))
    registry.register(E2EStrategyExecutor(capabilities, runner=runner, settings=settings))
    registry.register(ScriptStrategyExecutor(runner=runner, settings=settings))
    registry.register(CommandStrategyExecutor(runner=runner, settings=settings))
    registry.register(HttpStrategyExecutor(settings=settings, transport=http_transport))
    registry.register(FileStrategyExecutor())
    registry.register(ManualStrategyExecutor(user_input))
    registry.register(AiStrategyExecutor(agent, git=git, settings=settings, prompts=prompts))
    registry.register(CompositeStrategyExecutor(registry))
    return registry


__all__ = [
    "AiJudgement",
    "AiStrategyConfig",
    "AiStrategyExecutor",
    "BaseStrategyConfig",
    "CommandStrategyConfig",
    "CommandStrategyExecutor",
    "CompositeStrategyConfig",
    "CompositeStrategyExecutor",
    "CriterionJudgement",
    "E2EStrategyConfig",
    "E2EStrategyExecutor",
    "ExecutorSettings",
    "FileCheck",
    "FileStrategyConfig",
    "FileStrategyExecutor",
    "HttpStrategyConfig",
    "HttpStrategyExecutor",
    "JsonAssertion",
    "ManualStrategyConfig",
    "ManualStrategyExecutor",
    "ScriptStrategyConfig",
    "ScriptStrategyExecutor",
    "StrategyConfig",
    "StrategyExecutor",
    "StrategyRegistry",
    "StrategyResult",
    "TestStrategyConfig",
    "TestStrategyExecutor",
    "build_default_registry",
    "format_ai_output",
    "parse_ai_response",
    "parse_strategy_config",
    "parse_strategy_configs",
]

"""
workledger verification collaborators

File: src/workledger/verification_plane/collaborators.py

Purpose
- Protocols for the services the verification plane consumes but does not implement:
  capability detection, agent invocation, version-control queries, and interactive input.

Functional requirements
- Executors depend only on these protocols so tests can inject fakes.
- ``Capabilities`` describes the detected test and end-to-end commands of a project.
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class E2ECapability:
    """Detected end-to-end test runner."""

    command: str
    framework: str | None = None
    grep_template: str | None = None
    file_template: str | None = None


@dataclass(frozen=True, slots=True)
class Capabilities:
    test_command: str | None = None
    test_framework: str | None = None
    e2e: E2ECapability | None = None


@dataclass(frozen=True, slots=True)
class AgentResponse:
    success: bool
    output: str = ""
    agent_used: str | None = None
    error: str | None = None


@runtime_checkable
class CapabilityDetector(Protocol):
    async def detect(self, workdir: Path) -> Capabilities: ...


@runtime_checkable
class AgentInvoker(Protocol):
    async def call(
        self,
        prompt: str,
        *,
        timeout_ms: int,
        cwd: Path,
        model: str | None = None,
    ) -> AgentResponse: ...


@runtime_checkable
class GitHelper(Protocol):
    async def diff(self, workdir: Path) -> str: ...

    async def is_dirty(self, workdir: Path) -> bool: ...


@runtime_checkable
class UserInput(Protocol):
    """Blocking human prompts used by manual verification."""

    @property
    def interactive(self) -> bool: ...

    def display(self, text: str) -> None: ...

    async def ask_yes_no(self, question: str, *, default: bool = False) -> bool: ...

    async def ask_checklist(self, items: Sequence[str]) -> list[bool]: ...


class StaticCapabilities:
    """Capability detector that returns a fixed answer."""

    def __init__(self, capabilities: Capabilities) -> None:
        self._capabilities = capabilities

    async def detect(self, workdir: Path) -> Capabilities:
        return self._capabilities


class NonInteractiveInput:
    """User input that never blocks; every answer is the default."""

    @property
    def interactive(self) -> bool:
        return False

    def display(self, text: str) -> None:
        return None

    async def ask_yes_no(self, question: str, *, default: bool = False) -> bool:
        return default

    async def ask_checklist(self, items: Sequence[str]) -> list[bool]:
        return [False for _ in items]


class ConsoleInput:
    """Terminal prompts on stdin/stdout, run in a worker thread so the event loop stays free."""

    @property
    def interactive(self) -> bool:
        return sys.stdin.isatty() and os.environ.get("CI", "").lower() != "true"

    def display(self, text: str) -> None:
        print(text)

    async def ask_yes_no(self, question: str, *, default: bool = False) -> bool:
        suffix = " [Y/n] " if default else " [y/N] "
        answer = await asyncio.to_thread(input, question + suffix)
        normalized = answer.strip().lower()
        if not normalized:
            return default
        return normalized in {"y", "yes"}

    async def ask_checklist(self, items: Sequence[str]) -> list[bool]:
        results: list[bool] = []
        for item in items:
            results.append(await self.ask_yes_no(f"  [ ] {item}"))
        return results


__all__ = [
    "AgentInvoker",
    "AgentResponse",
    "Capabilities",
    "CapabilityDetector",
    "ConsoleInput",
    "E2ECapability",
    "GitHelper",
    "NonInteractiveInput",
    "StaticCapabilities",
    "UserInput",
]

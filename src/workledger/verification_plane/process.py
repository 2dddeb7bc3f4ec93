"""
workledger subprocess execution

File: src/workledger/verification_plane/process.py

Purpose
- Shared command invocation for the test, e2e, script, and command strategies.

Functional requirements
- Commands run without a shell; ``argv`` goes straight to ``create_subprocess_exec``.
- A timeout kills the child's whole process group and returns whatever output it produced.
- Draining output after a kill is bounded, so an orphaned pipe holder cannot stall the run.
- Output is decoded as UTF-8 with replacement, newline-normalized, and truncated.
- A spawn failure (missing binary, bad cwd) is a result with ``error`` set, never an exception.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CAPTURE_CHARS = 200_000
TRUNCATION_MARKER = "\n... (truncated)"
_DRAIN_GRACE_SECS = 2.0
_NEW_SESSION = os.name != "nt"


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One subprocess invocation; ``env`` is layered over the parent environment."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.argv, str) or not self.argv:
            raise ValueError("CommandSpec.argv must be a non-empty sequence of strings")
        argv = tuple(self.argv)
        if not all(isinstance(item, str) and item for item in argv):
            raise ValueError("CommandSpec.argv items must be non-empty strings")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds must be > 0")
        object.__setattr__(self, "argv", argv)
        object.__setattr__(self, "env", {str(k): str(v) for k, v in self.env.items()})

    def process_env(self) -> dict[str, str]:
        return {**os.environ, **self.env}

    @property
    def display(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """What a command produced; ``exit_code`` is None when it never finished."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    @property
    def combined_output(self) -> str:
        return f"{self.stdout}\n{self.stderr}" if self.stderr else self.stdout


@runtime_checkable
class CommandExecutor(Protocol):
    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor:
    """Runs commands on the local machine with bounded output capture."""

    def __init__(self, *, max_output_chars: int | None = DEFAULT_CAPTURE_CHARS) -> None:
        if max_output_chars is not None and max_output_chars <= 0:
            raise ValueError("max_output_chars must be > 0")
        self._max_output_chars = max_output_chars

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.process_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_NEW_SESSION,
            )
        except OSError as exc:
            logger.warning("command_spawn_failed", command=spec.display, error=str(exc))
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=elapsed_ms(started_ns),
                error=str(exc),
            )

        timed_out = False
        try:
            stdout_bytes, stderr_bytes = await _communicate_with_timeout(process, spec.timeout_seconds)
        except _CommandTimeout as exc:
            stdout_bytes, stderr_bytes = exc.stdout, exc.stderr
            timed_out = True
            logger.warning("command_timed_out", command=spec.display, timeout_seconds=spec.timeout_seconds)

        return CommandResult(
            argv=spec.argv,
            exit_code=None if timed_out else process.returncode,
            stdout=self._capture(stdout_bytes),
            stderr=self._capture(stderr_bytes),
            duration_ms=elapsed_ms(started_ns),
            timed_out=timed_out,
            error=f"command timed out after {spec.timeout_seconds:.3f}s" if timed_out else None,
        )

    def _capture(self, raw: bytes) -> str:
        text = raw.decode("utf-8", errors="replace").replace("\r\n", "\n").replace("\r", "\n")
        return truncate_text(text, self._max_output_chars)


class _CommandTimeout(Exception):
    def __init__(self, stdout: bytes, stderr: bytes) -> None:
        super().__init__("command timed out")
        self.stdout = stdout
        self.stderr = stderr


async def _communicate_with_timeout(
    process: asyncio.subprocess.Process,
    timeout_seconds: float | None,
) -> tuple[bytes, bytes]:
    try:
        return await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except TimeoutError as exc:
        _kill_process_tree(process)
        stdout, stderr = await _drain(process)
        raise _CommandTimeout(stdout, stderr) from exc
    except asyncio.CancelledError:
        _kill_process_tree(process)
        await _drain(process)
        raise


def _kill_process_tree(process: asyncio.subprocess.Process) -> None:
    # The child leads its own session, so the group id is its pid.
    if _NEW_SESSION:
        with suppress(OSError):
            os.killpg(process.pid, signal.SIGKILL)
            return
    with suppress(ProcessLookupError):
        process.kill()


async def _drain(process: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
    """Collect remaining output, giving up once the grace period passes."""

    try:
        return await asyncio.wait_for(process.communicate(), timeout=_DRAIN_GRACE_SECS)
    except TimeoutError:
        logger.warning("command_drain_abandoned", pid=process.pid, grace_seconds=_DRAIN_GRACE_SECS)
        return b"", b""


def elapsed_ms(started_ns: int) -> int:
    return max(0, (time.monotonic_ns() - started_ns) // 1_000_000)


def truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "TRUNCATION_MARKER",
    "elapsed_ms",
    "truncate_text",
]

"""Unit tests for the local subprocess executor using the running interpreter as the child."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from workledger.verification_plane.process import (
    TRUNCATION_MARKER,
    CommandSpec,
    LocalSubprocessExecutor,
    truncate_text,
)


@pytest.mark.asyncio
async def test_captures_exit_code_and_streams(tmp_path: Path) -> None:
    script = "import os, sys; print(os.environ['WL_MARK']); sys.stderr.write('warn\\r\\n'); sys.exit(3)"
    spec = CommandSpec(
        argv=(sys.executable, "-c", script),
        cwd=str(tmp_path),
        env={"WL_MARK": "from-spec"},
        timeout_seconds=30,
    )

    result = await LocalSubprocessExecutor().run(spec)

    assert result.exit_code == 3
    assert result.stdout.strip() == "from-spec"
    assert result.stderr == "warn\n"
    assert result.combined_output == f"{result.stdout}\nwarn\n"
    assert result.timed_out is False
    assert result.error is None


@pytest.mark.asyncio
async def test_timeout_kills_child() -> None:
    spec = CommandSpec(argv=(sys.executable, "-c", "import time; time.sleep(30)"), timeout_seconds=0.2)

    result = await LocalSubprocessExecutor().run(spec)

    assert result.timed_out is True
    assert result.exit_code is None
    assert result.error == "command timed out after 0.200s"


@pytest.mark.asyncio
async def test_missing_binary_is_reported_not_raised(tmp_path: Path) -> None:
    result = await LocalSubprocessExecutor().run(
        CommandSpec(argv=(str(tmp_path / "no-such-tool"),))
    )

    assert result.exit_code is None
    assert result.error


@pytest.mark.asyncio
async def test_output_is_truncated_to_capture_limit() -> None:
    spec = CommandSpec(argv=(sys.executable, "-c", "print('x' * 50)"), timeout_seconds=30)

    result = await LocalSubprocessExecutor(max_output_chars=10).run(spec)

    assert result.stdout == "x" * 10 + TRUNCATION_MARKER


@pytest.mark.parametrize(
    "kwargs",
    [
        {"argv": ()},
        {"argv": "echo hi"},
        {"argv": ("echo", "")},
        {"argv": ("echo",), "timeout_seconds": 0},
    ],
)
def test_invalid_specs(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        CommandSpec(**kwargs)  # type: ignore[arg-type]


def test_truncate_text_passthrough() -> None:
    assert truncate_text("short", 10) == "short"
    assert truncate_text("long text", None) == "long text"
    assert truncate_text("abcdef", 3) == "abc" + TRUNCATION_MARKER


@pytest.mark.asyncio
@pytest.mark.skipif(os.name == "nt", reason="process groups are POSIX-only")
async def test_timeout_kills_grandchildren_holding_the_pipes(tmp_path: Path) -> None:
    marker = tmp_path / "survived"
    grandchild = f"import pathlib, time; time.sleep(2); pathlib.Path({str(marker)!r}).touch()"
    parent = (
        "import subprocess, sys, time; "
        f"subprocess.Popen([sys.executable, '-c', {grandchild!r}]); "
        "time.sleep(30)"
    )
    spec = CommandSpec(argv=(sys.executable, "-c", parent), timeout_seconds=0.5)

    started = time.monotonic()
    result = await LocalSubprocessExecutor().run(spec)
    elapsed = time.monotonic() - started

    assert result.timed_out is True
    assert elapsed < 2.0
    await asyncio.sleep(2.5)
    assert not marker.exists()

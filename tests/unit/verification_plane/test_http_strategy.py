"""
workledger — unit tests for the HTTP strategy

File: tests/unit/verification_plane/test_http_strategy.py

Purpose
- Validate HTTP verification against an in-memory ``httpx.MockTransport``.

What this test file should cover
- Allow-list enforcement before any request is sent.
- Status, body-pattern, and JSON-path assertions.
- Environment substitution in URL and headers; redirects are not followed.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from workledger.verification_plane.strategies import (
    ExecutorSettings,
    HttpStrategyExecutor,
    parse_strategy_config,
)
from workledger.verification_plane.strategies.http import (
    USER_AGENT,
    evaluate_json_path,
    json_values_equal,
    substitute_env,
)

from . import make_record


class _Recorder:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._response


def _executor(recorder: _Recorder) -> HttpStrategyExecutor:
    return HttpStrategyExecutor(settings=ExecutorSettings(), transport=httpx.MockTransport(recorder))


@pytest.mark.asyncio
async def test_disallowed_host_is_blocked_before_request(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(200))
    config = parse_strategy_config({"type": "http", "url": "https://example.com/health"})

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is False
    assert result.reason == "security-violation"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_status_and_json_assertions_pass(tmp_path: Path) -> None:
    recorder = _Recorder(
        httpx.Response(200, json={"status": "ok", "checks": [{"name": "db", "up": True}]})
    )
    config = parse_strategy_config(
        {
            "type": "http",
            "url": "http://localhost:8080/health",
            "expectedBodyPattern": '"status"',
            "jsonAssertions": [
                {"path": "status", "expected": "ok"},
                {"path": "checks[0].up", "expected": True},
            ],
        }
    )

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is True
    assert result.details["statusCode"] == 200
    assert result.details["jsonAssertionsMatch"] is True
    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.headers["User-Agent"] == USER_AGENT


@pytest.mark.asyncio
async def test_json_assertion_failure_lists_each_error(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(200, json={"status": "degraded", "count": 1}))
    config = parse_strategy_config(
        {
            "type": "http",
            "url": "http://localhost/health",
            "jsonAssertions": [
                {"path": "status", "expected": "ok"},
                {"path": "missing.key", "expected": 1},
                {"path": "count", "expected": True},
            ],
        }
    )

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is False
    errors = result.details["jsonAssertionErrors"]
    assert errors == [
        "JSONPath 'status': expected \"ok\", got \"degraded\"",
        "JSONPath 'missing.key': expected 1, got undefined",
        "JSONPath 'count': expected true, got 1",
    ]


@pytest.mark.asyncio
async def test_unexpected_status_fails(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(503, text="unavailable"))
    config = parse_strategy_config({"type": "http", "url": "http://127.0.0.1:9000/"})

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is False
    assert result.details["statusMatch"] is False
    assert result.output.startswith("HTTP Status: 503\nStatus code did not match expected value")


@pytest.mark.asyncio
async def test_redirect_is_not_followed(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(302, headers={"Location": "https://evil.example/"}))
    config = parse_strategy_config({"type": "http", "url": "http://localhost/login"})

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert len(recorder.requests) == 1
    assert result.success is False
    assert result.details["statusCode"] == 302


@pytest.mark.asyncio
async def test_env_substitution_and_json_body(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(201))
    config = parse_strategy_config(
        {
            "type": "http",
            "url": "http://${API_HOST}/items",
            "method": "POST",
            "headers": {"Authorization": "Bearer ${API_TOKEN}", "X-Missing": "${NOT_SET_ANYWHERE_XYZ}"},
            "body": {"name": "widget"},
            "expectedStatus": 201,
            "env": {"API_HOST": "localhost:5000", "API_TOKEN": "t0k3n"},
        }
    )

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is True
    request = recorder.requests[0]
    assert str(request.url) == "http://localhost:5000/items"
    assert request.headers["Authorization"] == "Bearer t0k3n"
    assert request.headers["X-Missing"] == "${NOT_SET_ANYWHERE_XYZ}"
    assert json.loads(request.content) == {"name": "widget"}


@pytest.mark.asyncio
async def test_per_strategy_allowed_hosts_override_settings(tmp_path: Path) -> None:
    recorder = _Recorder(httpx.Response(200))
    config = parse_strategy_config(
        {"type": "http", "url": "https://api.staging.example.com/ping", "allowedHosts": ["*.example.com"]}
    )

    result = await _executor(recorder).execute(tmp_path, config, make_record())

    assert result.success is True
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_transport_error_is_request_failed(tmp_path: Path) -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    executor = HttpStrategyExecutor(transport=httpx.MockTransport(_refuse))
    config = parse_strategy_config({"type": "http", "url": "http://localhost:1/"})

    result = await executor.execute(tmp_path, config, make_record())

    assert result.reason == "request-failed"


@pytest.mark.asyncio
async def test_timeout_is_reported(tmp_path: Path) -> None:
    def _slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    executor = HttpStrategyExecutor(transport=httpx.MockTransport(_slow))
    config = parse_strategy_config({"type": "http", "url": "http://localhost/", "timeout": 250})

    result = await executor.execute(tmp_path, config, make_record())

    assert result.reason == "timeout"
    assert result.details["timeout"] == 250


def test_json_path_helpers() -> None:
    document = {"items": [{"id": 1}, {"id": 2}], "flag": False}

    assert evaluate_json_path(document, "items[1].id") == 2
    assert evaluate_json_path(document, "items.*") == [{"id": 1}, {"id": 2}]
    assert json_values_equal(evaluate_json_path(document, "flag"), False) is True
    assert json_values_equal(1, True) is False
    assert json_values_equal([1, {"a": 2}], [1, {"a": 2}]) is True
    assert substitute_env("${A}-${B}", {"A": "x"}) == "x-${B}"

"""
workledger HTTP strategy

File: src/workledger/verification_plane/strategies/http.py

Purpose
- Issue one HTTP request against a running service and assert status, body, and JSON fields.

Functional requirements
- ``${VAR}`` references in the URL and header values expand from the process environment
  overlaid with the strategy ``env``; unknown references are left untouched.
- The target host must pass the network allow-list before any request is sent.
- Redirects are not followed, so a redirect cannot reach a host the allow-list denies.
- ``json_assertions`` use a minimal path syntax: ``a.b[0].c`` with ``*`` returning the list.
"""

from __future__ import annotations

import json
import os
import re
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Final

import httpx
import structlog

from workledger.domain.models import JSONValue, Record
from workledger.sandbox.network_policy import NetworkPolicy, NetworkPolicyViolationError
from workledger.verification_plane.process import elapsed_ms, truncate_text
from workledger.verification_plane.strategies.base import (
    ExecutorSettings,
    HttpStrategyConfig,
    JsonAssertion,
    StrategyConfig,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import (
    SECURITY_VIOLATION,
    TIMEOUT,
    expect_config,
    timeout_ms,
)

logger = structlog.get_logger(__name__)

USER_AGENT: Final[str] = "workledger-http-verifier/1.0"
MAX_BODY_CHARS: Final[int] = 1_000

_ENV_REFERENCE: Final = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_PATH_SEPARATORS: Final = re.compile(r"[.\[\]]")
_MISSING: Final = object()


def substitute_env(text: str, env: Mapping[str, str]) -> str:
    return _ENV_REFERENCE.sub(lambda match: env.get(match.group(1), match.group(0)), text)


def evaluate_json_path(document: object, path: str) -> object:
    """Value at ``path`` or a sentinel when any segment is missing."""

    current = document
    for part in (segment for segment in _PATH_SEPARATORS.split(path) if segment):
        if part == "*":
            return current if isinstance(current, list) else _MISSING
        if isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def json_values_equal(actual: object, expected: object) -> bool:
    # ``True == 1`` in Python but not in JSON.
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(
            json_values_equal(a, e) for a, e in zip(actual, expected, strict=True)
        )
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(
            json_values_equal(actual[key], expected[key]) for key in actual
        )
    return actual == expected


def check_json_assertions(body: str, assertions: tuple[JsonAssertion, ...]) -> list[str]:
    try:
        document = json.loads(body)
    except json.JSONDecodeError as exc:
        return [f"Failed to parse response as JSON: {exc}"]
    errors: list[str] = []
    for assertion in assertions:
        actual = evaluate_json_path(document, assertion.path)
        if actual is _MISSING or not json_values_equal(actual, assertion.expected):
            shown = "undefined" if actual is _MISSING else json.dumps(actual)
            errors.append(
                f"JSONPath '{assertion.path}': expected {json.dumps(assertion.expected)}, got {shown}"
            )
    return errors


class HttpStrategyExecutor:
    strategy_type = "http"

    def __init__(
        self,
        *,
        settings: ExecutorSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings if settings is not None else ExecutorSettings()
        self._transport = transport

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, HttpStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.http_timeout_ms)

        env = dict(os.environ)
        env.update(config.env)
        url = substitute_env(config.url, env)

        policy = NetworkPolicy(
            config.allowed_hosts if config.allowed_hosts is not None else self._settings.allowed_hosts
        )
        try:
            policy.enforce(url, context={"record_id": record.id})
        except NetworkPolicyViolationError as exc:
            return StrategyResult.failure(
                f"URL blocked by network policy: {exc}",
                reason=SECURITY_VIOLATION,
                url=url,
            ).with_duration(elapsed_ms(started_ns))

        headers = {"User-Agent": USER_AGENT}
        headers.update({key: substitute_env(value, env) for key, value in config.headers.items()})
        request_kwargs: dict[str, object] = {"headers": headers}
        if isinstance(config.body, (dict, list)):
            request_kwargs["json"] = config.body
        elif isinstance(config.body, str):
            request_kwargs["content"] = config.body

        try:
            async with httpx.AsyncClient(
                timeout=limit_ms / 1000.0,
                transport=self._transport,
                follow_redirects=False,
            ) as client:
                response = await client.request(config.method, url, **request_kwargs)  # type: ignore[arg-type]
        except httpx.TimeoutException:
            return StrategyResult.failure(
                f"HTTP request timed out after {limit_ms}ms",
                reason=TIMEOUT,
                timeout=limit_ms,
                url=url,
            ).with_duration(elapsed_ms(started_ns))
        except httpx.HTTPError as exc:
            logger.info("http_strategy_request_failed", record_id=record.id, url=url, error=str(exc))
            return StrategyResult.failure(
                f"HTTP request failed: {exc}",
                reason="request-failed",
                url=url,
            ).with_duration(elapsed_ms(started_ns))

        body = response.text
        messages: list[str] = []
        details: dict[str, JSONValue] = {
            "url": url,
            "method": config.method,
            "statusCode": response.status_code,
            "expectedStatus": list(config.expected_status),
        }

        status_ok = response.status_code in config.expected_status
        details["statusMatch"] = status_ok
        success = status_ok
        if not status_ok:
            messages.append("Status code did not match expected value")

        if config.expected_body_pattern is not None:
            matched = re.search(config.expected_body_pattern, body) is not None
            details["patternMatch"] = matched
            if not matched:
                success = False
                messages.append("Response body did not match expected pattern")

        if config.json_assertions:
            errors = check_json_assertions(body, config.json_assertions)
            details["jsonAssertionsMatch"] = not errors
            if errors:
                success = False
                details["jsonAssertionErrors"] = list(errors)
                messages.append("JSON assertion failures:")
                messages.extend(f"  - {error}" for error in errors)

        lines = [f"HTTP Status: {response.status_code}", *messages, "", "Response body:", truncate_text(body, MAX_BODY_CHARS)]
        return StrategyResult(
            success=success,
            output="\n".join(lines),
            duration_ms=elapsed_ms(started_ns),
            details=details,
        )


__all__ = [
    "HttpStrategyExecutor",
    "USER_AGENT",
    "check_json_assertions",
    "evaluate_json_path",
    "json_values_equal",
    "substitute_env",
]

"""Host allow-list for outbound verification requests."""

from __future__ import annotations

import ipaddress
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import structlog

from workledger.constants import DEFAULT_ALLOWED_HOSTS
from workledger.errors import SecurityViolationError

logger = structlog.get_logger(__name__)

DecisionLogger = Callable[["NetworkDecision"], None]

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class NetworkPolicyViolationError(SecurityViolationError):
    """Raised when a request target is denied by the host allow-list."""


@dataclass(frozen=True, slots=True)
class NetworkDecision:
    """Outcome of evaluating one request target."""

    target: str
    host: str
    port: int | None
    scheme: str | None
    allowed: bool
    reason: str
    matched_rule: str | None
    context: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _AllowRule:
    raw: str
    exact_host: str | None = None
    suffix: str | None = None
    ip_network: ipaddress.IPv4Network | ipaddress.IPv6Network | None = None
    ip_address: IPAddress | None = None

    @property
    def is_explicit(self) -> bool:
        return self.suffix is None


class NetworkPolicy:
    """Allow-list evaluator.

    Rules are exact host names, ``*.suffix`` wildcards (which also match the bare
    suffix), IP literals, or CIDR networks. Private and link-local addresses are denied
    unless a non-wildcard rule names them.
    """

    def __init__(
        self,
        allowlist: Iterable[str] = DEFAULT_ALLOWED_HOSTS,
        *,
        decision_logger: DecisionLogger | None = None,
    ) -> None:
        self._rules = tuple(_parse_allow_rule(item) for item in allowlist)
        self._decision_logger = decision_logger

    @property
    def allowlist(self) -> tuple[str, ...]:
        return tuple(rule.raw for rule in self._rules)

    def evaluate(self, target: str, *, context: Mapping[str, str] | None = None) -> NetworkDecision:
        host, port, scheme = _parse_target(target)
        rule = self._match_rule(host)

        if rule is None:
            allowed = False
            reason = f"host {host!r} is not in allowed hosts list; allowed: {', '.join(self.allowlist)}"
        elif not rule.is_explicit and _is_private_address(host):
            allowed = False
            reason = f"private network address {host!r} must be listed explicitly"
        else:
            allowed = True
            reason = "allowed by allow-list rule"

        decision = NetworkDecision(
            target=target,
            host=host,
            port=port,
            scheme=scheme,
            allowed=allowed,
            reason=reason,
            matched_rule=rule.raw if rule is not None else None,
            context=dict(context or {}),
        )
        if not allowed:
            logger.warning("network_target_denied", host=host, reason=reason)
        if self._decision_logger is not None:
            self._decision_logger(decision)
        return decision

    def enforce(self, target: str, *, context: Mapping[str, str] | None = None) -> NetworkDecision:
        decision = self.evaluate(target, context=context)
        if decision.allowed:
            return decision
        raise NetworkPolicyViolationError(decision.reason)

    def _match_rule(self, host: str) -> _AllowRule | None:
        host_ip = _ip_or_none(host)
        for rule in self._rules:
            if rule.exact_host is not None and host == rule.exact_host:
                return rule
            if rule.suffix is not None and (host == rule.suffix or host.endswith(f".{rule.suffix}")):
                return rule
            if rule.ip_address is not None and host_ip is not None and host_ip == rule.ip_address:
                return rule
            if rule.ip_network is not None and host_ip is not None and host_ip in rule.ip_network:
                return rule
        return None


def _parse_target(target: str) -> tuple[str, int | None, str | None]:
    normalized = target.strip()
    if not normalized:
        raise NetworkPolicyViolationError("request target must not be empty")
    parsed = urlsplit(normalized if "://" in normalized else f"//{normalized}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise NetworkPolicyViolationError(f"invalid URL {target!r}: {exc}") from exc
    if not parsed.hostname:
        raise NetworkPolicyViolationError(f"invalid URL {target!r}: no host")
    scheme = parsed.scheme.lower() if parsed.scheme else None
    return parsed.hostname.lower(), port, scheme


def _parse_allow_rule(raw_rule: str) -> _AllowRule:
    normalized = raw_rule.strip().lower()
    if not normalized:
        raise ValueError("allow-list rule must not be empty")
    if normalized.startswith("*."):
        suffix = normalized[2:]
        if not suffix:
            raise ValueError("allow-list wildcard rule must include a suffix")
        return _AllowRule(raw=normalized, suffix=suffix)

    address = _ip_or_none(normalized)
    if address is not None:
        return _AllowRule(raw=normalized, ip_address=address)
    if "/" in normalized:
        try:
            return _AllowRule(raw=normalized, ip_network=ipaddress.ip_network(normalized, strict=False))
        except ValueError as exc:
            raise ValueError(f"invalid allow-list network {raw_rule!r}") from exc
    return _AllowRule(raw=normalized, exact_host=normalized)


def _ip_or_none(host: str) -> IPAddress | None:
    try:
        return ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return None


def _is_private_address(host: str) -> bool:
    address = _ip_or_none(host)
    if address is None:
        return False
    if address.is_loopback:
        return False
    return address.is_private or address.is_link_local


__all__ = [
    "NetworkDecision",
    "NetworkPolicy",
    "NetworkPolicyViolationError",
]

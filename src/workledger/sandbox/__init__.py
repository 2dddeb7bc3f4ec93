"""Sandbox guards for outbound network access."""

from workledger.sandbox.network_policy import (
    NetworkDecision,
    NetworkPolicy,
    NetworkPolicyViolationError,
)

__all__ = ["NetworkDecision", "NetworkPolicy", "NetworkPolicyViolationError"]

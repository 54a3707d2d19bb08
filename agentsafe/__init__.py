"""
Agent-SAFE Grid: policy enforcement, metering and audit for LLM traffic.

Agent-SAFE Grid sits between an application and its upstream language
models. Every chat turn passes through a tenant's ordered policy rules
before and after the model call, is metered against the tenant's budget,
and leaves signed entries in an append-only audit log.

Key Features:
    - Ordered policy rules: PII redaction, content filters, budgets, RBAC,
      jailbreak detection, compliance, geo and time windows
    - Fail-closed enforcement: a failing evaluator blocks the message
    - Per-tenant token and cost metering with budget alerts
    - Signed, optionally hash-chained audit log with CSV export
    - HTTP API (aiohttp) and an ``agentsafe`` command-line tool

Example:
    Enforcing a policy on a prompt::

        from agentsafe.engine import PolicyEngine
        from agentsafe.models import PolicyConfig

        policy = PolicyConfig(pii_redaction=True)
        result = PolicyEngine().enforce(policy, "mail me at jane@example.com")
        print(result.final_text)  # mail me at [EMAIL_REDACTED]

Public API:
    Version:
        __version__: The package version string

    Exceptions:
        AgentSafeError: Base exception for all Agent-SAFE Grid errors
        ConfigurationError: Configuration and policy document errors
        ValidationError: Invalid requests and data
        PolicyViolation: A rule blocked a prompt or response
        UpstreamError: The model call failed or timed out
        IntegrityError: An audit signature did not verify
        EnforcementError: Enforcement could not complete
        StorageError: Storage layer errors
"""

from agentsafe.exceptions import (
    AgentSafeError,
    ConfigurationError,
    EnforcementError,
    IntegrityError,
    PolicyViolation,
    StorageError,
    UpstreamError,
    ValidationError,
)
from agentsafe.version import __version__

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "AgentSafeError",
    "ConfigurationError",
    "ValidationError",
    "PolicyViolation",
    "UpstreamError",
    "IntegrityError",
    "EnforcementError",
    "StorageError",
]

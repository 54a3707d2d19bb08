"""
Exception classes for Agent-SAFE Grid.

This module defines the exception hierarchy used throughout the enforcement
and metering core. All custom exceptions inherit from AgentSafeError so a
caller can catch any Agent-SAFE specific failure with one except clause.

Policy violations and upstream errors are recoverable at the request level:
the turn fails but the session continues. Only a ConfigurationError raised
while a policy is being saved should stop that save.
"""

from typing import Any


class AgentSafeError(Exception):
    """
    Base exception for all Agent-SAFE errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class ConfigurationError(AgentSafeError):
    """
    Raised when configuration is malformed.

    Covers both service configuration (YAML files, environment variables)
    and policy authoring. A rule configuration error is reported when the
    policy is saved, never while a message is being evaluated.

    Examples:
        - BUDGET rule without a numeric limit
        - JAILBREAK sensitivity outside [0, 1]
        - Duplicate rule id inside one policy
        - Invalid YAML in the service configuration file
    """

    pass


class ValidationError(AgentSafeError):
    """
    Raised when request input fails validation.

    Examples:
        - Chat message with empty content
        - Negative token count reported to the ledger
        - Unknown provider id in a chat request
    """

    pass


class PolicyViolation(AgentSafeError):
    """
    Raised when a rule fired with a blocking verdict.

    This is not a system fault. It is surfaced to the caller as a structured
    refusal naming the blocking rule, and it always has exactly one
    ``violation`` audit entry behind it.

    Attributes:
        rule_id: Identifier of the blocking rule.
        severity: Severity of the blocking rule.
        rule_type: Type of the blocking rule.
        reason: Reason reported by the evaluator.
    """

    def __init__(
        self,
        message: str,
        rule_id: str,
        severity: str = "medium",
        rule_type: str = "",
        reason: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"rule_id": rule_id, "severity": severity, "rule_type": rule_type}
        merged.update(details or {})
        super().__init__(message, merged)
        self.rule_id = rule_id
        self.severity = severity
        self.rule_type = rule_type
        self.reason = reason


class UpstreamError(AgentSafeError):
    """
    Raised when the model adapter fails or times out.

    No usage occurred, so the metering ledger is never debited for a turn
    that ends with this error.

    Attributes:
        provider_id: Provider the call was routed to.
        timed_out: Whether the failure was the call timeout.
    """

    def __init__(
        self,
        message: str,
        provider_id: str = "",
        timed_out: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"provider_id": provider_id, "timed_out": timed_out}
        merged.update(details or {})
        super().__init__(message, merged)
        self.provider_id = provider_id
        self.timed_out = timed_out


class IntegrityError(AgentSafeError):
    """
    Raised when an audit hash does not match its recomputation.

    Fatal for the entry concerned. Verification reports it and never
    drops the entry silently.

    Attributes:
        entry_id: The audit entry that failed verification.
        expected: The recomputed hash.
        actual: The stored hash.
    """

    def __init__(
        self,
        message: str,
        entry_id: str,
        expected: str = "",
        actual: str = "",
    ) -> None:
        super().__init__(
            message,
            {"entry_id": entry_id, "expected": expected, "actual": actual},
        )
        self.entry_id = entry_id
        self.expected = expected
        self.actual = actual


class EnforcementError(AgentSafeError):
    """
    Raised when the enforcement machinery itself is misused.

    Examples:
        - No evaluator registered for a rule type
        - Enforcement invoked without a policy
    """

    pass


class StorageError(AgentSafeError):
    """
    Raised when there is an error in the storage layer.

    Examples:
        - Database connection failed
        - Query execution error
        - Stored policy document cannot be decoded
    """

    pass

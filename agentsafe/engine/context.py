"""
Evaluation context and verdict types for the policy engine.

Evaluators receive the message text plus an EvaluationContext describing
the request (role, origin country, time, compliance clearance, ledger
position) and return a RuleVerdict. The engine collects the verdicts of
fired rules into an EnforcementResult.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from agentsafe.exceptions import ValidationError
from agentsafe.models.base import utc_now
from agentsafe.models.rules import RuleType, Severity


class VerdictAction(Enum):
    """What the engine does with a rule's verdict."""

    ALLOW = "allow"
    """Continue with the working text unchanged."""

    TRANSFORM = "transform"
    """Replace the working text with the transformed text and continue."""

    BLOCK = "block"
    """Stop evaluation and refuse the message."""


class Direction(Enum):
    """Which side of the model call a text belongs to."""

    INPUT = "input"
    """A user prompt on its way to the model."""

    OUTPUT = "output"
    """A model response on its way back to the user."""


@dataclass(frozen=True)
class RuleVerdict:
    """
    Outcome of evaluating one rule against one message.

    Attributes:
        fired: Whether the rule's condition matched.
        action: allow, transform or block.
        transformed_text: New working text for a transform verdict.
        reason: Explanation. Also set on non-blocking warnings.
        metadata: Evaluator specific facts (match counts, scores).
    """

    fired: bool
    action: VerdictAction
    transformed_text: str | None = None
    reason: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str = "", fired: bool = False, **metadata: Any) -> "RuleVerdict":
        """A passing verdict. ``fired`` with a reason marks a warning."""
        return cls(fired=fired, action=VerdictAction.ALLOW, reason=reason, metadata=metadata)

    @classmethod
    def transform(cls, text: str, reason: str = "", **metadata: Any) -> "RuleVerdict":
        return cls(
            fired=True,
            action=VerdictAction.TRANSFORM,
            transformed_text=text,
            reason=reason,
            metadata=metadata,
        )

    @classmethod
    def block(cls, reason: str, **metadata: Any) -> "RuleVerdict":
        return cls(fired=True, action=VerdictAction.BLOCK, reason=reason, metadata=metadata)

    @property
    def is_warning(self) -> bool:
        """True for a fired, non-blocking verdict that carries a reason."""
        return self.fired and self.action == VerdictAction.ALLOW and bool(self.reason)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "fired": self.fired,
            "action": self.action.value,
            "reason": self.reason,
        }
        if self.transformed_text is not None:
            result["transformed_text"] = self.transformed_text
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


@dataclass(frozen=True)
class EvaluationContext:
    """
    Request facts the context-based rules evaluate against.

    Attributes:
        tenant_id: Tenant the request belongs to.
        user: Acting user identifier.
        user_role: Role of the acting user, for RBAC rules.
        permission: Permission the request needs, for RBAC rules.
        country: ISO code of the request origin, for GEO rules.
        now: Request time, for TIME rules. Timezone-aware.
        compliance_flags: Standards the request is cleared for.
        total_cost: Ledger cost before this turn, for BUDGET rules.
        projected_cost: Estimated cost of this turn, for BUDGET rules.
        direction: Whether a prompt or a response is being evaluated.
        metadata: Free-form request metadata.
    """

    tenant_id: str = ""
    user: str = ""
    user_role: str | None = None
    permission: str | None = None
    country: str | None = None
    now: datetime = field(default_factory=utc_now)
    compliance_flags: frozenset[str] = frozenset()
    total_cost: float = 0.0
    projected_cost: float = 0.0
    direction: Direction = Direction.INPUT
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, **extra: Any) -> "EvaluationContext":
        """
        Build a context from a request payload.

        Accepts ``role``/``user_role``, ``country``, ``permission``,
        ``compliance`` (list of standards) and ``now`` (ISO 8601).
        Keyword arguments override the payload.

        Raises:
            ValidationError: If a field has the wrong type or ``now`` is not
                an ISO 8601 timestamp with an offset.
        """
        data = dict(data or {})
        values: dict[str, Any] = {}
        role = _optional_str(data, "user_role", "role")
        if role is not None:
            values["user_role"] = role
        permission = _optional_str(data, "permission")
        if permission is not None:
            values["permission"] = permission
        country = _optional_str(data, "country")
        if country is not None:
            values["country"] = country.upper()
        flags = data.get("compliance_flags", data.get("compliance"))
        if flags:
            if isinstance(flags, str):
                flags = [flags]
            if not isinstance(flags, (list, tuple)) or not all(isinstance(f, str) for f in flags):
                raise ValidationError("'compliance' must be a string or list of strings")
            values["compliance_flags"] = frozenset(f.upper() for f in flags)
        if data.get("now"):
            if not isinstance(data["now"], str):
                raise ValidationError("'now' must be an ISO 8601 string")
            try:
                now = datetime.fromisoformat(data["now"])
            except ValueError as e:
                raise ValidationError(f"Invalid 'now' timestamp: {data['now']}") from e
            if now.tzinfo is None:
                raise ValidationError("'now' must carry a timezone offset")
            values["now"] = now
        if isinstance(data.get("metadata"), dict):
            values["metadata"] = data["metadata"]
        values.update(extra)
        return cls(**values)


def _optional_str(data: dict[str, Any], *keys: str) -> str | None:
    """Return the first present key's value, which must be a string."""
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"'{key}' must be a string", details={"field": key})
        return value
    return None


@dataclass(frozen=True)
class FiredRule:
    """
    A rule that fired during enforcement, with its verdict.

    Attributes:
        rule_id: Id of the fired rule.
        rule_type: Type of the fired rule.
        severity: Severity of the fired rule.
        verdict: The verdict it returned.
        synthesized: Whether the rule came from the legacy flags.
    """

    rule_id: str
    rule_type: RuleType
    severity: Severity
    verdict: RuleVerdict
    synthesized: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_type": self.rule_type.value,
            "severity": self.severity.value,
            "verdict": self.verdict.to_dict(),
            "synthesized": self.synthesized,
        }


@dataclass(frozen=True)
class EnforcementResult:
    """
    Outcome of enforcing a policy on one message.

    Attributes:
        original_text: The text before any rule ran.
        final_text: Cumulative transformed text.
        allowed: False when a rule blocked.
        fired_rules: Fired rules in evaluation order.
        blocking_rule: Id of the rule that blocked, if any.
        direction: Whether a prompt or a response was evaluated.
    """

    original_text: str
    final_text: str
    allowed: bool
    fired_rules: tuple[FiredRule, ...] = ()
    blocking_rule: str | None = None
    direction: Direction = Direction.INPUT

    @property
    def blocking(self) -> FiredRule | None:
        """The fired rule that blocked, if any."""
        if self.blocking_rule is None:
            return None
        for fired in self.fired_rules:
            if fired.rule_id == self.blocking_rule:
                return fired
        return None

    @property
    def transforms(self) -> list[FiredRule]:
        return [f for f in self.fired_rules if f.verdict.action == VerdictAction.TRANSFORM]

    @property
    def redacted(self) -> bool:
        """True when a PII rule transformed the text."""
        return any(f.rule_type == RuleType.PII for f in self.transforms)

    @property
    def warnings(self) -> list[str]:
        return [f.verdict.reason for f in self.fired_rules if f.verdict.is_warning]

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_text": self.final_text,
            "allowed": self.allowed,
            "fired_rules": [f.to_dict() for f in self.fired_rules],
            "blocking_rule": self.blocking_rule,
            "direction": self.direction.value,
            "redacted": self.redacted,
            "warnings": self.warnings,
        }

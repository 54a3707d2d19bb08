"""
Policy validator for Agent-SAFE Grid.

Typed rule configs already reject malformed parameters when they are
constructed. The validator works one level up: it validates a whole policy
document (collecting every error instead of stopping at the first one) and
reports semantic problems of a well-formed policy as warnings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentsafe.exceptions import ConfigurationError
from agentsafe.models.policy import PolicyConfig
from agentsafe.models.rules import (
    BudgetConfig,
    ContentConfig,
    JailbreakConfig,
    PIIConfig,
    PolicyRule,
    RBACConfig,
    RuleType,
    TimeConfig,
)


class MessageLevel(Enum):
    """Severity level for validation messages."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationMessage:
    """
    A validation message with severity and context.

    Attributes:
        level: Severity level of the message.
        message: Human-readable description of the issue.
        rule_id: Id of the rule the message relates to, if any.
        details: Additional details about the issue.
    """

    level: MessageLevel
    message: str
    rule_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        prefix = f"[{self.level.value.upper()}]"
        if self.rule_id:
            prefix += f" Rule '{self.rule_id}'"
        return f"{prefix}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "message": self.message,
            "rule_id": self.rule_id,
            "details": self.details,
        }


@dataclass
class ValidationResult:
    """
    Result of policy validation.

    Attributes:
        valid: Whether the policy is valid (no errors).
        errors: List of error messages.
        warnings: List of warning messages.
        info: List of informational messages.
        policy: The parsed policy, when the document could be parsed.
    """

    valid: bool = True
    errors: list[ValidationMessage] = field(default_factory=list)
    warnings: list[ValidationMessage] = field(default_factory=list)
    info: list[ValidationMessage] = field(default_factory=list)
    policy: PolicyConfig | None = None

    def add_error(
        self, message: str, rule_id: str = "", details: dict[str, Any] | None = None
    ) -> None:
        """Add an error message."""
        self.valid = False
        self.errors.append(
            ValidationMessage(MessageLevel.ERROR, message, rule_id, details or {})
        )

    def add_warning(
        self, message: str, rule_id: str = "", details: dict[str, Any] | None = None
    ) -> None:
        """Add a warning message."""
        self.warnings.append(
            ValidationMessage(MessageLevel.WARNING, message, rule_id, details or {})
        )

    def add_info(
        self, message: str, rule_id: str = "", details: dict[str, Any] | None = None
    ) -> None:
        """Add an informational message."""
        self.info.append(
            ValidationMessage(MessageLevel.INFO, message, rule_id, details or {})
        )

    def all_messages(self) -> list[ValidationMessage]:
        """Get all messages in order of severity."""
        return self.errors + self.warnings + self.info

    def raise_for_errors(self) -> None:
        """
        Raise if the result holds errors.

        Raises:
            ConfigurationError: Listing every error message.
        """
        if self.errors:
            raise ConfigurationError(
                f"Policy has {len(self.errors)} error(s): {self.errors[0].message}",
                details={"errors": [e.to_dict() for e in self.errors]},
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [m.to_dict() for m in self.errors],
            "warnings": [m.to_dict() for m in self.warnings],
            "info": [m.to_dict() for m in self.info],
        }


class PolicyValidator:
    """
    Validates tenant policies.

    The PolicyValidator checks:
    - Every rule document parses into a typed rule
    - Rule ids are unique
    - The max budget is positive
    - Rules are ordered cheap checks first (BUDGET before JAILBREAK)
    - Rules that can never fire (CONTENT without keywords, ...)
    - Legacy flags that disagree with the rules
    """

    def validate(self, policy: PolicyConfig | dict[str, Any]) -> ValidationResult:
        """
        Validate a parsed policy or a policy document.

        Args:
            policy: A PolicyConfig, or its camelCase/snake_case document.

        Returns:
            ValidationResult with errors, warnings and info messages. For a
            valid document the parsed policy is attached.
        """
        result = ValidationResult()
        if isinstance(policy, PolicyConfig):
            parsed = policy
        else:
            parsed = self._parse_document(policy, result)
            if parsed is None:
                return result

        result.policy = parsed
        self._check_budget(parsed, result)
        self._check_rules(parsed, result)
        self._check_order(parsed, result)
        return result

    def _parse_document(
        self, document: Any, result: ValidationResult
    ) -> PolicyConfig | None:
        if not isinstance(document, dict):
            result.add_error("Policy document must be a mapping")
            return None

        raw_rules = document.get("advancedRules", document.get("advanced_rules", [])) or []
        if not isinstance(raw_rules, list):
            result.add_error("'advancedRules' must be a list")
            return None

        seen: set[str] = set()
        for position, raw in enumerate(raw_rules):
            rule_id = str(raw.get("id", "")) if isinstance(raw, dict) else ""
            try:
                rule = PolicyRule.from_dict(raw)
            except ConfigurationError as e:
                result.add_error(e.message, rule_id=rule_id, details={"position": position, **e.details})
                continue
            if rule.id in seen:
                result.add_error(f"Duplicate rule id: {rule.id}", rule_id=rule.id)
            seen.add(rule.id)

        if not result.valid:
            return None

        try:
            return PolicyConfig.from_dict(document)
        except ConfigurationError as e:
            result.add_error(e.message, details=e.details)
            return None

    def _check_budget(self, policy: PolicyConfig, result: ValidationResult) -> None:
        if policy.max_budget <= 0:
            result.add_error(
                "maxBudget must be positive", details={"max_budget": policy.max_budget}
            )
        budgets = [
            r for r in policy.advanced_rules if r.enabled and r.type == RuleType.BUDGET
        ]
        if len(budgets) > 1:
            result.add_warning(
                f"{len(budgets)} enabled BUDGET rules; maxBudget follows the first one",
                rule_id=budgets[1].id,
            )

    def _check_rules(self, policy: PolicyConfig, result: ValidationResult) -> None:
        if policy.advanced_rules and not any(r.enabled for r in policy.advanced_rules):
            result.add_warning("All advanced rules are disabled; nothing will be enforced")

        for rule in policy.advanced_rules:
            config = rule.config
            if isinstance(config, ContentConfig) and not config.keywords:
                result.add_warning("CONTENT rule has no keywords and never fires", rule.id)
            elif isinstance(config, PIIConfig) and not config.patterns:
                result.add_warning("PII rule has no pattern classes and never fires", rule.id)
            elif (
                isinstance(config, JailbreakConfig)
                and not config.known_attacks
                and not config.extra_phrases
            ):
                result.add_warning(
                    "JAILBREAK rule has no phrases to score and never fires", rule.id
                )
            elif isinstance(config, RBACConfig) and not config.roles:
                result.add_info("RBAC rule has no roles and allows every user", rule.id)
            elif isinstance(config, TimeConfig) and config.start_time == config.end_time:
                result.add_info("TIME rule window covers the whole day", rule.id)
            elif isinstance(config, BudgetConfig) and config.alert_threshold is None:
                result.add_info("BUDGET rule has no alert threshold", rule.id)

        if policy.advanced_rules:
            derived = PolicyConfig(
                max_budget=policy.max_budget, advanced_rules=list(policy.advanced_rules)
            )
            derived.recompute_derived()
            for flag in ("pii_redaction", "jailbreak_detection", "max_budget"):
                if getattr(derived, flag) != getattr(policy, flag):
                    result.add_warning(
                        f"'{flag}' disagrees with the advanced rules and will be recomputed",
                        details={"stored": getattr(policy, flag), "derived": getattr(derived, flag)},
                    )

    def _check_order(self, policy: PolicyConfig, result: ValidationResult) -> None:
        seen_jailbreak = False
        for rule in policy.advanced_rules:
            if not rule.enabled:
                continue
            if rule.type == RuleType.JAILBREAK:
                seen_jailbreak = True
            elif rule.type == RuleType.BUDGET and seen_jailbreak:
                result.add_warning(
                    "BUDGET rule runs after a JAILBREAK rule; place cheap checks first",
                    rule.id,
                )

"""
Tenant policy configuration for Agent-SAFE Grid.

PolicyConfig is the per-tenant aggregate: an ordered sequence of advanced
rules plus the coarse legacy flags of the simple policy view. The flags are a
projection of the rules. Every authoring operation recomputes them, and a
flag that is derived from the rules cannot be written on its own while
advanced rules exist.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from agentsafe.exceptions import ConfigurationError
from agentsafe.models.base import utc_now
from agentsafe.models.rules import (
    BudgetConfig,
    PolicyRule,
    RuleType,
    Severity,
    config_to_dict,
    parse_rule_config,
)

DSL_VERSION = "2.4.0"
ENFORCEMENT_MODE = "strict"

SAFETY_PRESETS: dict[str, dict[str, bool]] = {
    "strict": {
        "pii_redaction": True,
        "jailbreak_detection": True,
        "topic_constraint": True,
    },
    "moderate": {
        "pii_redaction": True,
        "jailbreak_detection": True,
        "topic_constraint": False,
    },
    "lax": {
        "pii_redaction": False,
        "jailbreak_detection": False,
        "topic_constraint": False,
    },
}

LEGACY_FLAGS = ("pii_redaction", "jailbreak_detection", "topic_constraint", "audit_logging")

# Flags recomputed from the advanced rules
DERIVED_FLAGS = ("pii_redaction", "jailbreak_detection")

_FLAG_ALIASES = {
    "piiRedaction": "pii_redaction",
    "jailbreakDetection": "jailbreak_detection",
    "topicConstraint": "topic_constraint",
    "auditLogging": "audit_logging",
}


def _flag_name(name: str) -> str:
    name = _FLAG_ALIASES.get(name, name)
    if name not in LEGACY_FLAGS:
        raise ConfigurationError(
            f"Unknown policy flag: {name}", details={"allowed": list(LEGACY_FLAGS)}
        )
    return name


@dataclass
class PolicyConfig:
    """
    A tenant's policy: legacy flags plus the ordered advanced rules.

    Unlike PolicyRule, PolicyConfig is mutable because rules are added,
    removed and reordered while the policy is being authored.

    Attributes:
        pii_redaction: Derived: an enabled PII rule exists.
        jailbreak_detection: Derived: an enabled JAILBREAK rule exists.
        topic_constraint: Coarse flag kept for the simple policy view.
        audit_logging: Coarse flag kept for the simple policy view.
        max_budget: Derived: limit of the first enabled BUDGET rule, else
            the previous value.
        advanced_rules: Rules in evaluation order. Ids are unique.
    """

    pii_redaction: bool = True
    jailbreak_detection: bool = True
    topic_constraint: bool = False
    audit_logging: bool = True
    max_budget: float = 100.0
    advanced_rules: list[PolicyRule] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._check_unique_ids(self.advanced_rules)

    @staticmethod
    def _check_unique_ids(rules: list[PolicyRule]) -> None:
        seen: set[str] = set()
        for rule in rules:
            if rule.id in seen:
                raise ConfigurationError(
                    f"Duplicate rule id: {rule.id}", details={"rule_id": rule.id}
                )
            seen.add(rule.id)

    @property
    def has_advanced_rules(self) -> bool:
        return bool(self.advanced_rules)

    def get_rule(self, rule_id: str) -> PolicyRule | None:
        """Return the rule with the given id, or None."""
        for rule in self.advanced_rules:
            if rule.id == rule_id:
                return rule
        return None

    def _index_of(self, rule_id: str) -> int:
        for index, rule in enumerate(self.advanced_rules):
            if rule.id == rule_id:
                return index
        raise ConfigurationError(f"Rule not found: {rule_id}", details={"rule_id": rule_id})

    def recompute_derived(self) -> None:
        """
        Recompute the legacy flags from the advanced rules.

        ``max_budget`` keeps its previous value when no enabled BUDGET rule
        exists. A limit of zero is rejected by BudgetConfig, so any enabled
        BUDGET rule always carries a usable limit.
        """
        enabled = [rule for rule in self.advanced_rules if rule.enabled]
        self.pii_redaction = any(rule.type == RuleType.PII for rule in enabled)
        self.jailbreak_detection = any(rule.type == RuleType.JAILBREAK for rule in enabled)
        for rule in enabled:
            if rule.type == RuleType.BUDGET and isinstance(rule.config, BudgetConfig):
                self.max_budget = rule.config.limit
                break

    # Authoring operations

    def add_rule(self, rule: PolicyRule, index: int | None = None) -> PolicyRule:
        """
        Insert a rule into the sequence.

        Args:
            rule: The rule to add.
            index: Position to insert at. Appends when None.

        Returns:
            The added rule.

        Raises:
            ConfigurationError: If a rule with the same id already exists.
        """
        if self.get_rule(rule.id) is not None:
            raise ConfigurationError(f"Duplicate rule id: {rule.id}", details={"rule_id": rule.id})
        if index is None:
            self.advanced_rules.append(rule)
        else:
            self.advanced_rules.insert(index, rule)
        self.recompute_derived()
        return rule

    def remove_rule(self, rule_id: str) -> PolicyRule:
        """
        Remove a rule by id.

        Raises:
            ConfigurationError: If the rule does not exist.
        """
        rule = self.advanced_rules.pop(self._index_of(rule_id))
        self.recompute_derived()
        return rule

    def move_rule(self, rule_id: str, new_index: int) -> None:
        """Move a rule to a new position in the evaluation order."""
        rule = self.advanced_rules.pop(self._index_of(rule_id))
        new_index = max(0, min(new_index, len(self.advanced_rules)))
        self.advanced_rules.insert(new_index, rule)
        self.recompute_derived()

    def set_enabled(self, rule_id: str, enabled: bool) -> PolicyRule:
        """Enable or disable a rule."""
        index = self._index_of(rule_id)
        updated = replace(self.advanced_rules[index], enabled=enabled)
        self.advanced_rules[index] = updated
        self.recompute_derived()
        return updated

    def update_rule_config(self, rule_id: str, changes: dict[str, Any]) -> PolicyRule:
        """
        Merge parameter changes into a rule's configuration.

        The merged mapping is parsed again, so invalid values are rejected
        and the rule is left untouched.

        Raises:
            ConfigurationError: If the rule does not exist or the merged
                configuration is invalid.
        """
        index = self._index_of(rule_id)
        rule = self.advanced_rules[index]
        merged = config_to_dict(rule.config)
        merged.update(changes)
        updated = replace(rule, config=parse_rule_config(rule.type, merged))
        self.advanced_rules[index] = updated
        self.recompute_derived()
        return updated

    def update_rule_meta(
        self,
        rule_id: str,
        name: str | None = None,
        description: str | None = None,
        severity: Severity | str | None = None,
    ) -> PolicyRule:
        """Update a rule's display name, description or severity."""
        index = self._index_of(rule_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if severity is not None:
            try:
                changes["severity"] = Severity(severity)
            except ValueError as e:
                raise ConfigurationError(f"Unknown severity: {severity}") from e
        updated = replace(self.advanced_rules[index], **changes)
        self.advanced_rules[index] = updated
        return updated

    def set_legacy_flag(self, name: str, value: bool) -> None:
        """
        Write one of the coarse flags of the simple policy view.

        Raises:
            ConfigurationError: If the flag is derived from the advanced
                rules and advanced rules exist.
        """
        attr = _flag_name(name)
        if attr in DERIVED_FLAGS and self.has_advanced_rules:
            raise ConfigurationError(
                f"'{attr}' is derived from the advanced rules and cannot be set directly",
                details={"flag": attr, "rule_count": len(self.advanced_rules)},
            )
        setattr(self, attr, bool(value))

    def apply_preset(self, preset: str) -> None:
        """
        Apply a named safety preset (strict, moderate, lax).

        Raises:
            ConfigurationError: If the preset is unknown or advanced rules
                exist.
        """
        flags = SAFETY_PRESETS.get(preset)
        if flags is None:
            raise ConfigurationError(
                f"Unknown safety preset: {preset}", details={"allowed": list(SAFETY_PRESETS)}
            )
        if self.has_advanced_rules:
            raise ConfigurationError(
                "Safety presets only apply to policies without advanced rules",
                details={"preset": preset},
            )
        for attr, value in flags.items():
            setattr(self, attr, value)

    def export_dsl(self, timestamp: datetime | None = None) -> dict[str, Any]:
        """
        Export the enabled rules as a policy DSL document.

        Args:
            timestamp: Export time. Defaults to now.

        Returns:
            The DSL document.
        """
        return {
            "version": DSL_VERSION,
            "timestamp": (timestamp or utc_now()).isoformat(),
            "enforcementMode": ENFORCEMENT_MODE,
            "rules": [
                {
                    "type": rule.type.value,
                    "severity": rule.severity.value,
                    "config": config_to_dict(rule.config),
                }
                for rule in self.advanced_rules
                if rule.enabled
            ],
        }

    def copy(self) -> "PolicyConfig":
        """Return an independent copy of the policy."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert the policy to its document form."""
        return {
            "piiRedaction": self.pii_redaction,
            "jailbreakDetection": self.jailbreak_detection,
            "topicConstraint": self.topic_constraint,
            "auditLogging": self.audit_logging,
            "maxBudget": self.max_budget,
            "advancedRules": [rule.to_dict() for rule in self.advanced_rules],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyConfig":
        """
        Create a policy from its document form.

        Accepts camelCase or snake_case keys. Missing keys take the default
        policy values.

        Raises:
            ConfigurationError: If any field or rule is malformed.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Policy document must be a mapping")

        def pick(camel: str, snake: str, default: Any) -> Any:
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        flags: dict[str, bool] = {}
        for camel, snake in _FLAG_ALIASES.items():
            value = pick(camel, snake, getattr(cls, snake))
            if not isinstance(value, bool):
                raise ConfigurationError(f"'{camel}' must be a boolean")
            flags[snake] = value

        max_budget = pick("maxBudget", "max_budget", 100.0)
        if isinstance(max_budget, bool) or not isinstance(max_budget, (int, float)):
            raise ConfigurationError("'maxBudget' must be a number")

        raw_rules = pick("advancedRules", "advanced_rules", []) or []
        if not isinstance(raw_rules, list):
            raise ConfigurationError("'advancedRules' must be a list")
        rules = [PolicyRule.from_dict(item) for item in raw_rules]

        return cls(max_budget=float(max_budget), advanced_rules=rules, **flags)

    def __repr__(self) -> str:
        return (
            f"PolicyConfig(rules={len(self.advanced_rules)}, "
            f"pii_redaction={self.pii_redaction}, "
            f"jailbreak_detection={self.jailbreak_detection}, "
            f"max_budget={self.max_budget})"
        )

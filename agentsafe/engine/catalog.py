"""
Static catalog of rule types for Agent-SAFE Grid.

The catalog is the palette of the policy builder: one entry per RuleType
with its display metadata and default parameters. New rules are created
from it with ``new_rule``.
"""

from dataclasses import dataclass, replace
from typing import Any

from agentsafe.exceptions import ConfigurationError
from agentsafe.models.rules import (
    BudgetConfig,
    ComplianceConfig,
    ContentConfig,
    GeoConfig,
    JailbreakConfig,
    PIIConfig,
    PolicyRule,
    RBACConfig,
    RuleConfig,
    RuleType,
    Severity,
    TimeConfig,
    config_to_dict,
    parse_rule_config,
    parse_rule_type,
)


@dataclass(frozen=True)
class RuleDefinition:
    """
    Catalog entry describing one rule type.

    Attributes:
        type: The rule type.
        name: Default display name of new rules.
        description: Default description of new rules.
        icon: Icon identifier used by the builder UI.
        default_config: Default typed parameters.
    """

    type: RuleType
    name: str
    description: str
    icon: str
    default_config: RuleConfig

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "defaultConfig": config_to_dict(self.default_config),
        }


RULE_CATALOG: dict[RuleType, RuleDefinition] = {
    RuleType.PII: RuleDefinition(
        type=RuleType.PII,
        name="PII Redaction",
        description="Detect & mask sensitive data (SSN, Email, Phone)",
        icon="ShieldAlert",
        default_config=PIIConfig(),
    ),
    RuleType.CONTENT: RuleDefinition(
        type=RuleType.CONTENT,
        name="Content Filter",
        description="Block specific keywords or regex patterns",
        icon="Ban",
        default_config=ContentConfig(),
    ),
    RuleType.BUDGET: RuleDefinition(
        type=RuleType.BUDGET,
        name="Budget Control",
        description="Enforce spending limits per timeframe",
        icon="DollarSign",
        default_config=BudgetConfig(),
    ),
    RuleType.RBAC: RuleDefinition(
        type=RuleType.RBAC,
        name="Role Access",
        description="Define access levels for user roles",
        icon="Users",
        default_config=RBACConfig(),
    ),
    RuleType.JAILBREAK: RuleDefinition(
        type=RuleType.JAILBREAK,
        name="Anti-Jailbreak",
        description="Prevent prompt injection and attacks",
        icon="Lock",
        default_config=JailbreakConfig(),
    ),
    RuleType.COMPLIANCE: RuleDefinition(
        type=RuleType.COMPLIANCE,
        name="Compliance Pack",
        description="Apply standard regulatory presets",
        icon="FileText",
        default_config=ComplianceConfig(),
    ),
    RuleType.GEO: RuleDefinition(
        type=RuleType.GEO,
        name="Geo-Fencing",
        description="Restrict access by country/region",
        icon="Globe",
        default_config=GeoConfig(),
    ),
    RuleType.TIME: RuleDefinition(
        type=RuleType.TIME,
        name="Time Constraints",
        description="Limit usage to specific business hours",
        icon="Clock",
        default_config=TimeConfig(),
    ),
}


def get_definition(rule_type: RuleType | str) -> RuleDefinition:
    """
    Look up the catalog entry for a rule type.

    Raises:
        ConfigurationError: If the type is unknown.
    """
    return RULE_CATALOG[parse_rule_type(rule_type)]


def new_rule(rule_type: RuleType | str, **overrides: Any) -> PolicyRule:
    """
    Create a fresh enabled rule from the catalog defaults.

    Args:
        rule_type: Type of rule to create.
        **overrides: Rule fields (id, name, description, enabled, severity)
            or config parameters (camelCase or snake_case) replacing the
            defaults.

    Returns:
        A new PolicyRule with severity medium and a new id unless
        overridden.

    Raises:
        ConfigurationError: If an override is invalid.

    Example:
        Creating a budget rule with a custom limit::

            rule = new_rule(RuleType.BUDGET, limit=50)
    """
    definition = get_definition(rule_type)
    rule_fields = {"id", "name", "description", "enabled", "severity"}
    meta = {k: v for k, v in overrides.items() if k in rule_fields}
    params = {k: v for k, v in overrides.items() if k not in rule_fields}

    config = definition.default_config
    if params:
        merged = config_to_dict(config)
        merged.update(params)
        config = parse_rule_config(definition.type, merged)

    if "severity" in meta:
        try:
            meta["severity"] = Severity(meta["severity"])
        except ValueError as e:
            raise ConfigurationError(f"Unknown severity: {meta['severity']}") from e

    rule = PolicyRule(
        type=definition.type,
        name=definition.name,
        description=definition.description,
        enabled=True,
        severity=Severity.MEDIUM,
        config=config,
    )
    return replace(rule, **meta) if meta else rule

"""
Rule data models for Agent-SAFE Grid.

A policy is an ordered sequence of PolicyRule objects. Each rule carries a
type-specific configuration. Instead of an untyped key/value bag, the
configuration is one frozen dataclass per RuleType, validated when it is
constructed so that a malformed rule is rejected while the policy is being
authored, never while a message is being evaluated.

External documents (the policy JSON, the DSL export, the HTTP API) use the
camelCase keys of the authoring UI (``alertThreshold``, ``matchType``...).
Both camelCase and snake_case are accepted on input.
"""

import re
from dataclasses import dataclass, field, fields
from datetime import timezone, tzinfo
from enum import Enum
from typing import Any, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agentsafe.exceptions import ConfigurationError
from agentsafe.models.base import generate_uuid


class RuleType(Enum):
    """Closed enumeration of rule types."""

    PII = "PII"
    CONTENT = "CONTENT"
    BUDGET = "BUDGET"
    RBAC = "RBAC"
    JAILBREAK = "JAILBREAK"
    COMPLIANCE = "COMPLIANCE"
    GEO = "GEO"
    TIME = "TIME"


class Severity(Enum):
    """Severity attached to a rule and reported when it blocks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


PII_PATTERN_CLASSES = ("email", "phone", "ssn", "credit_card")
PII_METHODS = ("mask",)
PII_SCOPES = ("input", "output", "bi-directional")
CONTENT_MATCH_TYPES = ("partial", "exact", "regex")
CONTENT_ACTIONS = ("block", "warn")
BUDGET_PERIODS = ("daily", "weekly", "monthly", "quarterly", "yearly")

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_COUNTRY_PATTERN = re.compile(r"^[A-Z]{2}$")

# camelCase keys used by the authoring UI and the policy documents
_CAMEL_TO_SNAKE = {
    "matchType": "match_type",
    "caseSensitive": "case_sensitive",
    "alertThreshold": "alert_threshold",
    "knownAttacks": "known_attacks",
    "extraPhrases": "extra_phrases",
    "dataRetentionDays": "data_retention_days",
    "allowedCountries": "allowed_countries",
    "startTime": "start_time",
    "endTime": "end_time",
}
_SNAKE_TO_CAMEL = {v: k for k, v in _CAMEL_TO_SNAKE.items()}


def resolve_timezone(name: str) -> tzinfo:
    """
    Resolve a timezone name to a tzinfo object.

    Args:
        name: IANA timezone name, or UTC/GMT/Z.

    Returns:
        The tzinfo for the name.

    Raises:
        ConfigurationError: If the name is not a known timezone.
    """
    if name.upper() in ("UTC", "GMT", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"Unknown timezone: {name}", details={"timezone": name}
        ) from e


def _string_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(
            f"'{field_name}' must be a list of strings",
            details={"field": field_name, "value": value},
        )
    items = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigurationError(
                f"'{field_name}' must contain only strings",
                details={"field": field_name, "value": item},
            )
        item = item.strip()
        if item:
            items.append(item)
    return tuple(items)


def _number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"'{field_name}' must be a number",
            details={"field": field_name, "value": value},
        )
    return float(value)


@dataclass(frozen=True)
class PIIConfig:
    """
    PII redaction parameters.

    Attributes:
        patterns: Pattern classes to detect (email, phone, ssn, credit_card).
        method: Redaction method. Only ``mask`` (fixed placeholder) exists.
        scope: Which direction the rule applies to: ``input`` (user
            prompts), ``output`` (model responses) or ``bi-directional``.
    """

    patterns: tuple[str, ...] = ("email", "phone", "ssn")
    method: str = "mask"
    scope: str = "bi-directional"

    def __post_init__(self) -> None:
        unknown = [p for p in self.patterns if p not in PII_PATTERN_CLASSES]
        if unknown:
            raise ConfigurationError(
                f"Unknown PII pattern class(es): {', '.join(unknown)}",
                details={"allowed": list(PII_PATTERN_CLASSES)},
            )
        if self.method not in PII_METHODS:
            raise ConfigurationError(f"Unknown PII method: {self.method}")
        if self.scope not in PII_SCOPES:
            raise ConfigurationError(f"Unknown PII scope: {self.scope}")


@dataclass(frozen=True)
class ContentConfig:
    """
    Keyword filter parameters.

    Attributes:
        keywords: Keywords (or regular expressions) that trigger the rule.
        match_type: ``partial`` substring, ``exact`` whole word or ``regex``.
        action: ``block`` stops the turn, ``warn`` only reports.
        case_sensitive: Whether matching respects case.
    """

    keywords: tuple[str, ...] = ()
    match_type: str = "partial"
    action: str = "block"
    case_sensitive: bool = True

    def __post_init__(self) -> None:
        if self.match_type not in CONTENT_MATCH_TYPES:
            raise ConfigurationError(f"Unknown content match type: {self.match_type}")
        if self.action not in CONTENT_ACTIONS:
            raise ConfigurationError(f"Unknown content action: {self.action}")
        if self.match_type == "regex":
            for keyword in self.keywords:
                try:
                    re.compile(keyword)
                except re.error as e:
                    raise ConfigurationError(
                        f"Invalid content pattern {keyword!r}: {e}",
                        details={"pattern": keyword},
                    ) from e


@dataclass(frozen=True)
class BudgetConfig:
    """
    Spending limit parameters.

    Attributes:
        limit: Maximum cumulative cost for the tenant.
        period: Budget period label. The ledger is reset by the host at
            period rollover.
        alert_threshold: Utilisation percentage at which a non-blocking
            warning is reported. None disables the warning.
    """

    limit: float = 100.0
    period: str = "monthly"
    alert_threshold: float | None = 80.0

    def __post_init__(self) -> None:
        _number(self.limit, "limit")
        if self.limit <= 0:
            raise ConfigurationError(
                "Budget limit must be positive", details={"limit": self.limit}
            )
        if self.period not in BUDGET_PERIODS:
            raise ConfigurationError(f"Unknown budget period: {self.period}")
        if self.alert_threshold is not None:
            _number(self.alert_threshold, "alertThreshold")
            if not 0 <= self.alert_threshold <= 100:
                raise ConfigurationError(
                    "alertThreshold must be a percentage between 0 and 100",
                    details={"alert_threshold": self.alert_threshold},
                )


@dataclass(frozen=True)
class RBACConfig:
    """
    Role access parameters.

    Attributes:
        roles: Roles allowed to use the model. Empty means any role.
        permissions: Permissions granted to those roles. A request that
            names a permission outside this set is blocked.
    """

    roles: tuple[str, ...] = ("admin",)
    permissions: tuple[str, ...] = ("read", "write")


@dataclass(frozen=True)
class JailbreakConfig:
    """
    Jailbreak scoring parameters.

    Attributes:
        sensitivity: Threshold in [0, 1]. A message whose score reaches it
            is blocked, so a higher value is easier to pass.
        known_attacks: Whether the built-in adversarial phrase list is used.
        extra_phrases: Tenant-specific phrases scored like known attacks.
    """

    sensitivity: float = 0.8
    known_attacks: bool = True
    extra_phrases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _number(self.sensitivity, "sensitivity")
        if not 0.0 <= self.sensitivity <= 1.0:
            raise ConfigurationError(
                "Jailbreak sensitivity must be within [0, 1]",
                details={"sensitivity": self.sensitivity},
            )


@dataclass(frozen=True)
class ComplianceConfig:
    """
    Regulatory preset parameters.

    Attributes:
        standard: Standard the request context must be cleared for
            (GDPR, HIPAA, SOC2, PCI-DSS...).
        data_retention_days: Retention period declared by the preset.
    """

    standard: str = "GDPR"
    data_retention_days: int = 30

    def __post_init__(self) -> None:
        if not self.standard.strip():
            raise ConfigurationError("Compliance standard must not be empty")
        if isinstance(self.data_retention_days, bool) or not isinstance(
            self.data_retention_days, int
        ):
            raise ConfigurationError("dataRetentionDays must be an integer")
        if self.data_retention_days < 0:
            raise ConfigurationError("dataRetentionDays must be non-negative")


@dataclass(frozen=True)
class GeoConfig:
    """
    Geo-fencing parameters.

    Attributes:
        allowed_countries: ISO country codes, plus the ``EU`` region alias
            and ``UK`` for Great Britain.
    """

    allowed_countries: tuple[str, ...] = ("US", "EU", "UK")

    def __post_init__(self) -> None:
        for code in self.allowed_countries:
            if not _COUNTRY_PATTERN.match(code):
                raise ConfigurationError(
                    f"Invalid country code: {code!r}", details={"country": code}
                )


@dataclass(frozen=True)
class TimeConfig:
    """
    Business-hours parameters.

    Attributes:
        start_time: Window start as HH:MM.
        end_time: Window end as HH:MM (exclusive). A window whose end is
            before its start wraps past midnight.
        timezone: Timezone the window is expressed in.
    """

    start_time: str = "09:00"
    end_time: str = "17:00"
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        for name, value in (("startTime", self.start_time), ("endTime", self.end_time)):
            if not isinstance(value, str) or not _TIME_PATTERN.match(value):
                raise ConfigurationError(
                    f"'{name}' must be HH:MM", details={"field": name, "value": value}
                )
        resolve_timezone(self.timezone)

    @property
    def start_minutes(self) -> int:
        hours, minutes = self.start_time.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def end_minutes(self) -> int:
        hours, minutes = self.end_time.split(":")
        return int(hours) * 60 + int(minutes)


RuleConfig = Union[
    PIIConfig,
    ContentConfig,
    BudgetConfig,
    RBACConfig,
    JailbreakConfig,
    ComplianceConfig,
    GeoConfig,
    TimeConfig,
]

CONFIG_TYPES: dict[RuleType, type] = {
    RuleType.PII: PIIConfig,
    RuleType.CONTENT: ContentConfig,
    RuleType.BUDGET: BudgetConfig,
    RuleType.RBAC: RBACConfig,
    RuleType.JAILBREAK: JailbreakConfig,
    RuleType.COMPLIANCE: ComplianceConfig,
    RuleType.GEO: GeoConfig,
    RuleType.TIME: TimeConfig,
}

_TUPLE_FIELDS = {
    "patterns",
    "keywords",
    "roles",
    "permissions",
    "extra_phrases",
    "allowed_countries",
}


def parse_rule_type(value: Any) -> RuleType:
    """
    Parse a rule type from its name.

    Raises:
        ConfigurationError: If the value is not a known rule type.
    """
    if isinstance(value, RuleType):
        return value
    try:
        return RuleType(str(value).upper())
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown rule type: {value}",
            details={"allowed": [t.value for t in RuleType]},
        ) from e


def parse_rule_config(rule_type: RuleType, data: dict[str, Any] | None) -> RuleConfig:
    """
    Build the typed configuration for a rule type from a mapping.

    Args:
        rule_type: The rule type the configuration belongs to.
        data: camelCase or snake_case parameters. Missing keys take the
            catalog defaults, except the BUDGET ``limit`` which is required.

    Returns:
        The typed configuration variant.

    Raises:
        ConfigurationError: If a key is unknown or a value is malformed.
    """
    config_cls = CONFIG_TYPES[rule_type]
    data = dict(data or {})
    known = {f.name for f in fields(config_cls)}
    kwargs: dict[str, Any] = {}

    for key, value in data.items():
        name = _CAMEL_TO_SNAKE.get(key, key)
        if name not in known:
            raise ConfigurationError(
                f"Unknown {rule_type.value} config key: {key}",
                details={"rule_type": rule_type.value, "key": key},
            )
        if name in _TUPLE_FIELDS:
            value = _string_tuple(value, key)
            if name == "allowed_countries":
                value = tuple(code.upper() for code in value)
        kwargs[name] = value

    if rule_type == RuleType.BUDGET:
        if "limit" not in kwargs:
            raise ConfigurationError(
                "BUDGET rule requires a numeric limit",
                details={"rule_type": rule_type.value},
            )
        kwargs["limit"] = _number(kwargs["limit"], "limit")
    if rule_type == RuleType.JAILBREAK and "sensitivity" in kwargs:
        kwargs["sensitivity"] = _number(kwargs["sensitivity"], "sensitivity")

    try:
        return config_cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid {rule_type.value} config: {e}",
            details={"rule_type": rule_type.value},
        ) from e


def config_to_dict(config: RuleConfig) -> dict[str, Any]:
    """Serialize a typed rule configuration with camelCase keys."""
    result: dict[str, Any] = {}
    for f in fields(config):
        value = getattr(config, f.name)
        if isinstance(value, tuple):
            value = list(value)
        result[_SNAKE_TO_CAMEL.get(f.name, f.name)] = value
    return result


@dataclass(frozen=True)
class PolicyRule:
    """
    A single configurable check inside a tenant policy.

    Identity is the ``id``. Rules are evaluated in the order they appear in
    the policy, never by severity. The rule is immutable; authoring
    operations replace it with an updated copy.

    Attributes:
        id: Opaque identifier, unique within one policy.
        type: The rule type, which selects the evaluator.
        name: Display name.
        description: Human-readable explanation of the rule.
        enabled: Disabled rules are skipped during enforcement.
        severity: Reported when the rule blocks.
        config: Typed configuration matching ``type``.
    """

    id: str = field(default_factory=generate_uuid)
    type: RuleType = RuleType.PII
    name: str = ""
    description: str = ""
    enabled: bool = True
    severity: Severity = Severity.MEDIUM
    config: RuleConfig = field(default_factory=PIIConfig)

    def __post_init__(self) -> None:
        expected = CONFIG_TYPES[self.type]
        if not isinstance(self.config, expected):
            raise ConfigurationError(
                f"Rule {self.id} of type {self.type.value} has a "
                f"{type(self.config).__name__} configuration",
                details={"rule_id": self.id, "expected": expected.__name__},
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert the rule to its document form."""
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "severity": self.severity.value,
            "config": config_to_dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyRule":
        """
        Create a rule from its document form.

        Raises:
            ConfigurationError: If any field is malformed.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Rule definition must be a mapping")
        rule_type = parse_rule_type(data.get("type"))
        try:
            severity = Severity(str(data.get("severity", "medium")).lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown severity: {data.get('severity')}",
                details={"allowed": [s.value for s in Severity]},
            ) from e
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigurationError("'enabled' must be a boolean")
        config = data.get("config") or {}
        if not isinstance(config, dict):
            raise ConfigurationError("'config' must be a mapping")

        return cls(
            id=str(data.get("id") or generate_uuid()),
            type=rule_type,
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            enabled=enabled,
            severity=severity,
            config=parse_rule_config(rule_type, config),
        )

    def __hash__(self) -> int:
        """Return hash based on the rule's id."""
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        """Check equality based on rule id."""
        if not isinstance(other, PolicyRule):
            return NotImplemented
        return self.id == other.id

    def __repr__(self) -> str:
        return (
            f"PolicyRule(id={self.id!r}, type={self.type.value}, "
            f"enabled={self.enabled}, severity={self.severity.value})"
        )

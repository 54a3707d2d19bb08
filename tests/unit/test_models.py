"""
Unit tests for Agent-SAFE Grid data models.

This module tests typed rule configurations, PolicyRule, PolicyConfig
authoring operations, the rule catalog and the chat/metering/audit models.
"""

from datetime import datetime, timezone

import pytest

from agentsafe.engine.catalog import RULE_CATALOG, get_definition, new_rule
from agentsafe.exceptions import ConfigurationError
from agentsafe.models.audit import AuditLogEntry, AuditStatus
from agentsafe.models.messages import ChatMessage, Role
from agentsafe.models.metering import MeteringStats
from agentsafe.models.policy import DSL_VERSION, PolicyConfig
from agentsafe.models.rules import (
    BudgetConfig,
    ContentConfig,
    GeoConfig,
    JailbreakConfig,
    PIIConfig,
    PolicyRule,
    RuleType,
    Severity,
    TimeConfig,
    config_to_dict,
    parse_rule_config,
    parse_rule_type,
)


# =============================================================================
# Rule Config Tests
# =============================================================================


class TestParseRuleConfig:
    """Tests for building typed rule configurations."""

    def test_camel_case_keys(self) -> None:
        """Test that camelCase keys map to the typed fields."""
        config = parse_rule_config(
            RuleType.BUDGET, {"limit": 250, "period": "weekly", "alertThreshold": 90}
        )
        assert config == BudgetConfig(limit=250.0, period="weekly", alert_threshold=90)

    def test_snake_case_keys(self) -> None:
        """Test that snake_case keys are accepted too."""
        config = parse_rule_config(RuleType.CONTENT, {"keywords": ["x"], "match_type": "exact"})
        assert isinstance(config, ContentConfig)
        assert config.match_type == "exact"

    def test_budget_requires_limit(self) -> None:
        """Test that a BUDGET rule without a limit is rejected."""
        with pytest.raises(ConfigurationError, match="numeric limit"):
            parse_rule_config(RuleType.BUDGET, {"period": "monthly"})

    @pytest.mark.parametrize("limit", ["100", None, True])
    def test_budget_limit_must_be_numeric(self, limit) -> None:
        """Test that a non-numeric limit is rejected."""
        with pytest.raises(ConfigurationError):
            parse_rule_config(RuleType.BUDGET, {"limit": limit})

    def test_budget_limit_must_be_positive(self) -> None:
        with pytest.raises(ConfigurationError, match="positive"):
            parse_rule_config(RuleType.BUDGET, {"limit": 0})

    @pytest.mark.parametrize("sensitivity", [-0.1, 1.5])
    def test_sensitivity_range(self, sensitivity: float) -> None:
        """Test that jailbreak sensitivity must lie in [0, 1]."""
        with pytest.raises(ConfigurationError):
            parse_rule_config(RuleType.JAILBREAK, {"sensitivity": sensitivity})

    def test_unknown_pii_class(self) -> None:
        with pytest.raises(ConfigurationError, match="passport"):
            parse_rule_config(RuleType.PII, {"patterns": ["email", "passport"]})

    def test_unknown_key(self) -> None:
        """Test that unknown keys are rejected rather than ignored."""
        with pytest.raises(ConfigurationError, match="Unknown PII config key"):
            parse_rule_config(RuleType.PII, {"pattern": ["email"]})

    @pytest.mark.parametrize("value", ["9:00", "25:00", "09:60", 900])
    def test_malformed_time(self, value) -> None:
        with pytest.raises(ConfigurationError):
            parse_rule_config(RuleType.TIME, {"startTime": value})

    def test_unknown_timezone(self) -> None:
        with pytest.raises(ConfigurationError, match="timezone"):
            parse_rule_config(RuleType.TIME, {"timezone": "Mars/Olympus"})

    def test_invalid_regex(self) -> None:
        """Test that CONTENT regex mode compiles its patterns up front."""
        with pytest.raises(ConfigurationError, match="Invalid content pattern"):
            parse_rule_config(RuleType.CONTENT, {"keywords": ["(unclosed"], "matchType": "regex"})

    def test_countries_are_uppercased(self) -> None:
        config = parse_rule_config(RuleType.GEO, {"allowedCountries": ["us", "eu"]})
        assert config == GeoConfig(allowed_countries=("US", "EU"))

    def test_comma_separated_list(self) -> None:
        config = parse_rule_config(RuleType.PII, {"patterns": "email, ssn"})
        assert config.patterns == ("email", "ssn")

    def test_config_to_dict_round_trip(self) -> None:
        """Test that serialized configs parse back to the same variant."""
        config = TimeConfig(start_time="22:00", end_time="06:00", timezone="Europe/Berlin")
        data = config_to_dict(config)
        assert data == {"startTime": "22:00", "endTime": "06:00", "timezone": "Europe/Berlin"}
        assert parse_rule_config(RuleType.TIME, data) == config


class TestParseRuleType:
    """Tests for rule type parsing."""

    def test_case_insensitive(self) -> None:
        assert parse_rule_type("jailbreak") is RuleType.JAILBREAK

    def test_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown rule type"):
            parse_rule_type("SENTIMENT")


# =============================================================================
# PolicyRule Tests
# =============================================================================


class TestPolicyRule:
    """Tests for PolicyRule."""

    def test_from_dict(self) -> None:
        rule = PolicyRule.from_dict(
            {
                "id": "r1",
                "type": "CONTENT",
                "name": "Keywords",
                "severity": "critical",
                "config": {"keywords": ["secret"]},
            }
        )
        assert rule.id == "r1"
        assert rule.type is RuleType.CONTENT
        assert rule.severity is Severity.CRITICAL
        assert rule.config == ContentConfig(keywords=("secret",))
        assert rule.enabled is True

    def test_to_dict_round_trip(self) -> None:
        rule = new_rule(RuleType.GEO, id="geo", allowed_countries=["DE"])
        assert PolicyRule.from_dict(rule.to_dict()).to_dict() == rule.to_dict()

    def test_mismatched_config_rejected(self) -> None:
        """Test that a rule's config must match its type."""
        with pytest.raises(ConfigurationError):
            PolicyRule(id="x", type=RuleType.BUDGET, config=PIIConfig())

    def test_unknown_severity(self) -> None:
        with pytest.raises(ConfigurationError, match="severity"):
            PolicyRule.from_dict({"type": "PII", "severity": "urgent"})

    def test_identity_is_id(self) -> None:
        a = new_rule(RuleType.PII, id="same")
        b = new_rule(RuleType.CONTENT, id="same")
        assert a == b
        assert len({a, b}) == 1


# =============================================================================
# Catalog Tests
# =============================================================================


class TestCatalog:
    """Tests for the rule catalog."""

    def test_every_type_has_an_entry(self) -> None:
        assert set(RULE_CATALOG) == set(RuleType)

    def test_defaults(self) -> None:
        """Test the default parameters of the palette."""
        assert get_definition("PII").default_config == PIIConfig(
            patterns=("email", "phone", "ssn"), method="mask", scope="bi-directional"
        )
        assert get_definition(RuleType.BUDGET).default_config.limit == 100.0
        assert get_definition(RuleType.JAILBREAK).default_config == JailbreakConfig(
            sensitivity=0.8, known_attacks=True
        )
        assert get_definition(RuleType.GEO).default_config.allowed_countries == (
            "US",
            "EU",
            "UK",
        )

    def test_new_rule_defaults(self) -> None:
        rule = new_rule(RuleType.TIME)
        assert rule.enabled is True
        assert rule.severity is Severity.MEDIUM
        assert rule.name == "Time Constraints"
        assert rule.config == TimeConfig()

    def test_new_rule_fresh_ids(self) -> None:
        assert new_rule(RuleType.PII).id != new_rule(RuleType.PII).id

    def test_new_rule_overrides(self) -> None:
        rule = new_rule(RuleType.BUDGET, severity="high", limit=50, period="daily")
        assert rule.severity is Severity.HIGH
        assert rule.config.limit == 50.0
        assert rule.config.period == "daily"

    def test_to_dict(self) -> None:
        data = RULE_CATALOG[RuleType.CONTENT].to_dict()
        assert data["type"] == "CONTENT"
        assert data["icon"] == "Ban"
        assert data["defaultConfig"]["matchType"] == "partial"


# =============================================================================
# PolicyConfig Tests
# =============================================================================


class TestPolicyConfigDerivedFlags:
    """Tests for the legacy flags derived from the advanced rules."""

    def test_add_rule_recomputes(self) -> None:
        policy = PolicyConfig(pii_redaction=False, jailbreak_detection=False, max_budget=100)
        policy.add_rule(new_rule(RuleType.PII, id="pii"))
        policy.add_rule(new_rule(RuleType.BUDGET, id="budget", limit=40))
        assert policy.pii_redaction is True
        assert policy.jailbreak_detection is False
        assert policy.max_budget == 40.0

    def test_disabled_rules_do_not_count(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.JAILBREAK, id="jb", enabled=False))
        assert policy.jailbreak_detection is False
        assert policy.pii_redaction is False

    def test_first_enabled_budget_wins(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.BUDGET, id="b1", limit=10, enabled=False))
        policy.add_rule(new_rule(RuleType.BUDGET, id="b2", limit=20))
        policy.add_rule(new_rule(RuleType.BUDGET, id="b3", limit=30))
        assert policy.max_budget == 20.0

    def test_max_budget_keeps_previous_value(self) -> None:
        """Test that removing the budget rule leaves maxBudget unchanged."""
        policy = PolicyConfig(max_budget=100)
        policy.add_rule(new_rule(RuleType.BUDGET, id="b", limit=25))
        policy.remove_rule("b")
        assert policy.max_budget == 25.0

    def test_set_enabled_recomputes(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="pii"))
        policy.set_enabled("pii", False)
        assert policy.pii_redaction is False
        assert policy.get_rule("pii").enabled is False

    def test_legacy_flag_locked_with_rules(self) -> None:
        """Test that derived flags cannot be written while rules exist."""
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="pii"))
        with pytest.raises(ConfigurationError, match="derived"):
            policy.set_legacy_flag("piiRedaction", False)
        assert policy.pii_redaction is True

    def test_non_derived_flag_is_writable(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="pii"))
        policy.set_legacy_flag("topicConstraint", True)
        assert policy.topic_constraint is True

    def test_legacy_flag_without_rules(self) -> None:
        policy = PolicyConfig()
        policy.set_legacy_flag("jailbreak_detection", False)
        assert policy.jailbreak_detection is False

    def test_unknown_flag(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown policy flag"):
            PolicyConfig().set_legacy_flag("sarcasmFilter", True)


class TestPolicyConfigAuthoring:
    """Tests for the rule authoring operations."""

    def test_duplicate_id_rejected(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="dup"))
        with pytest.raises(ConfigurationError, match="Duplicate"):
            policy.add_rule(new_rule(RuleType.CONTENT, id="dup"))

    def test_duplicate_ids_in_constructor(self) -> None:
        with pytest.raises(ConfigurationError):
            PolicyConfig(advanced_rules=[new_rule(RuleType.PII, id="a"), new_rule(RuleType.GEO, id="a")])

    def test_insert_at_index(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="a"))
        policy.add_rule(new_rule(RuleType.PII, id="b"))
        policy.add_rule(new_rule(RuleType.PII, id="c"), index=0)
        assert [r.id for r in policy.advanced_rules] == ["c", "a", "b"]

    def test_move_rule(self) -> None:
        policy = PolicyConfig()
        for rule_id in ("a", "b", "c"):
            policy.add_rule(new_rule(RuleType.CONTENT, id=rule_id))
        policy.move_rule("c", 0)
        assert [r.id for r in policy.advanced_rules] == ["c", "a", "b"]
        policy.move_rule("c", 99)
        assert [r.id for r in policy.advanced_rules] == ["a", "b", "c"]

    def test_remove_missing_rule(self) -> None:
        with pytest.raises(ConfigurationError, match="Rule not found"):
            PolicyConfig().remove_rule("nope")

    def test_update_rule_config(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.BUDGET, id="b", limit=10))
        policy.update_rule_config("b", {"limit": 75})
        assert policy.get_rule("b").config.limit == 75.0
        assert policy.max_budget == 75.0

    def test_update_rule_config_invalid_leaves_rule(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.BUDGET, id="b", limit=10))
        with pytest.raises(ConfigurationError):
            policy.update_rule_config("b", {"limit": "lots"})
        assert policy.get_rule("b").config.limit == 10.0

    def test_update_rule_meta(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="p"))
        policy.update_rule_meta("p", name="Mask PII", severity="critical")
        rule = policy.get_rule("p")
        assert rule.name == "Mask PII"
        assert rule.severity is Severity.CRITICAL


class TestPolicyConfigPresets:
    """Tests for safety presets."""

    def test_strict(self) -> None:
        policy = PolicyConfig(pii_redaction=False, jailbreak_detection=False)
        policy.apply_preset("strict")
        assert policy.pii_redaction and policy.jailbreak_detection and policy.topic_constraint

    def test_lax(self) -> None:
        policy = PolicyConfig()
        policy.apply_preset("lax")
        assert not policy.pii_redaction
        assert not policy.jailbreak_detection

    def test_unknown_preset(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown safety preset"):
            PolicyConfig().apply_preset("paranoid")

    def test_preset_rejected_with_rules(self) -> None:
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.PII, id="p"))
        with pytest.raises(ConfigurationError):
            policy.apply_preset("lax")


class TestPolicyConfigSerialization:
    """Tests for policy documents and the DSL export."""

    def test_document_round_trip(self, scenario_policy: PolicyConfig) -> None:
        document = scenario_policy.to_dict()
        assert document["piiRedaction"] is True
        assert document["maxBudget"] == 100.0
        restored = PolicyConfig.from_dict(document)
        assert restored.to_dict() == document

    def test_from_dict_defaults(self) -> None:
        policy = PolicyConfig.from_dict({})
        assert policy.pii_redaction is True
        assert policy.jailbreak_detection is True
        assert policy.topic_constraint is False
        assert policy.audit_logging is True
        assert policy.max_budget == 100.0
        assert policy.advanced_rules == []

    @pytest.mark.parametrize(
        "document",
        [
            {"piiRedaction": "yes"},
            {"maxBudget": "100"},
            {"advancedRules": {"id": "x"}},
            {"advancedRules": [{"type": "BUDGET", "config": {}}]},
        ],
    )
    def test_from_dict_rejects_malformed(self, document) -> None:
        with pytest.raises(ConfigurationError):
            PolicyConfig.from_dict(document)

    def test_export_dsl(self) -> None:
        """Test that the DSL export lists only enabled rules."""
        policy = PolicyConfig()
        policy.add_rule(new_rule(RuleType.CONTENT, id="c", severity="high", keywords=["x"]))
        policy.add_rule(new_rule(RuleType.GEO, id="g", enabled=False))
        exported = policy.export_dsl(datetime(2024, 1, 2, tzinfo=timezone.utc))
        assert exported["version"] == DSL_VERSION
        assert exported["enforcementMode"] == "strict"
        assert exported["timestamp"] == "2024-01-02T00:00:00+00:00"
        assert exported["rules"] == [
            {
                "type": "CONTENT",
                "severity": "high",
                "config": {
                    "keywords": ["x"],
                    "matchType": "partial",
                    "action": "block",
                    "caseSensitive": True,
                },
            }
        ]

    def test_copy_is_independent(self, scenario_policy: PolicyConfig) -> None:
        clone = scenario_policy.copy()
        clone.remove_rule("pii")
        assert scenario_policy.get_rule("pii") is not None


# =============================================================================
# Message, Metering and Audit Model Tests
# =============================================================================


class TestChatMessage:
    """Tests for ChatMessage."""

    def test_from_dict(self) -> None:
        message = ChatMessage.from_dict({"role": "model", "content": "hi", "tokens": 3})
        assert message.role is Role.MODEL
        assert message.tokens == 3
        assert message.flagged is False

    def test_to_dict_omits_none(self) -> None:
        data = ChatMessage(role=Role.USER, content="hi").to_dict()
        assert data["role"] == "user"
        assert "signature" not in data


class TestMeteringStats:
    """Tests for MeteringStats."""

    def test_defaults(self) -> None:
        stats = MeteringStats()
        assert stats.total_requests == 0
        assert stats.budget_remaining == 100.0

    def test_utilization(self) -> None:
        assert MeteringStats(total_cost=25.0).utilization(200.0) == 12.5

    def test_round_trip(self) -> None:
        stats = MeteringStats(total_requests=2, total_tokens=10, total_cost=0.5, budget_remaining=9.5)
        assert MeteringStats.from_dict(stats.to_dict()) == stats


class TestAuditLogEntry:
    """Tests for AuditLogEntry."""

    def test_round_trip(self) -> None:
        entry = AuditLogEntry(
            tenant_id="t",
            action="MODEL_INFERENCE",
            user="Gemini",
            details="Generated 10 tokens",
            status=AuditStatus.SUCCESS,
            hash="ab" * 32,
            timestamp=1700000000000,
            sequence=3,
        )
        data = entry.to_dict()
        assert data["status"] == "success"
        assert AuditLogEntry.from_dict(data) == entry

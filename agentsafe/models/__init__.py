"""
Data models for Agent-SAFE Grid.

This package contains the rule, policy, message, metering and audit data
structures shared by the engine, the gateway and the storage layer.
"""

from agentsafe.models.audit import AuditAction, AuditLogEntry, AuditStatus
from agentsafe.models.base import generate_uuid, model_to_dict, now_ms, utc_now
from agentsafe.models.messages import ChatMessage, Role
from agentsafe.models.metering import MeteringStats
from agentsafe.models.policy import SAFETY_PRESETS, PolicyConfig
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
    parse_rule_config,
)

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditStatus",
    "BudgetConfig",
    "ChatMessage",
    "ComplianceConfig",
    "ContentConfig",
    "GeoConfig",
    "JailbreakConfig",
    "MeteringStats",
    "PIIConfig",
    "PolicyConfig",
    "PolicyRule",
    "RBACConfig",
    "Role",
    "RuleConfig",
    "RuleType",
    "SAFETY_PRESETS",
    "Severity",
    "TimeConfig",
    "generate_uuid",
    "model_to_dict",
    "now_ms",
    "parse_rule_config",
    "utc_now",
]

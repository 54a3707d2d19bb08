"""
Policy enforcement engine for Agent-SAFE Grid.

This package provides the rule catalog, the per-type rule evaluators, the
PolicyEngine that applies a tenant's ordered rules to a message, and the
tooling to parse, validate and store tenant policies.
"""

from agentsafe.engine.catalog import RULE_CATALOG, RuleDefinition, get_definition, new_rule
from agentsafe.engine.context import (
    Direction,
    EnforcementResult,
    EvaluationContext,
    FiredRule,
    RuleVerdict,
    VerdictAction,
)
from agentsafe.engine.detectors import PLACEHOLDERS, detect_pii, redact_pii
from agentsafe.engine.engine import PolicyEngine, synthesize_legacy_rules
from agentsafe.engine.evaluators import (
    EvaluatorRegistry,
    JailbreakScorer,
    PhraseMatchScorer,
)
from agentsafe.engine.parser import ParseError, ParseResult, PolicyParser
from agentsafe.engine.service import (
    InMemoryPolicyStore,
    PolicyStore,
    TenantPolicyService,
    default_policy,
)
from agentsafe.engine.validator import (
    MessageLevel,
    PolicyValidator,
    ValidationMessage,
    ValidationResult,
)

__all__ = [
    "Direction",
    "EnforcementResult",
    "EvaluationContext",
    "EvaluatorRegistry",
    "FiredRule",
    "InMemoryPolicyStore",
    "JailbreakScorer",
    "MessageLevel",
    "PLACEHOLDERS",
    "ParseError",
    "ParseResult",
    "PhraseMatchScorer",
    "PolicyEngine",
    "PolicyParser",
    "PolicyStore",
    "PolicyValidator",
    "RULE_CATALOG",
    "RuleDefinition",
    "RuleVerdict",
    "TenantPolicyService",
    "ValidationMessage",
    "ValidationResult",
    "VerdictAction",
    "default_policy",
    "detect_pii",
    "get_definition",
    "new_rule",
    "redact_pii",
    "synthesize_legacy_rules",
]

"""
Pytest configuration and shared fixtures for Agent-SAFE Grid tests.

This module provides:
- Database fixtures (fresh in-memory database)
- Policy fixtures (rules and tenant policies)
- Component fixtures (engine, ledger, recorder, gateway)
- Configuration fixtures
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

from agentsafe.adapters.base import ProviderConfig, ProviderKind, StaticAdapter
from agentsafe.audit.recorder import AuditRecorder
from agentsafe.config.defaults import get_test_config
from agentsafe.config.schema import AgentSafeConfig
from agentsafe.engine.catalog import new_rule
from agentsafe.engine.engine import PolicyEngine
from agentsafe.engine.service import InMemoryPolicyStore, TenantPolicyService
from agentsafe.gateway import SafetyGateway
from agentsafe.metering.ledger import MeteringLedger
from agentsafe.models.policy import PolicyConfig
from agentsafe.models.rules import RuleType
from agentsafe.storage.database import Database

TENANT = "tenant-a"
OFFICE_HOURS = datetime(2024, 3, 4, 10, 30, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db() -> Generator[Database, None, None]:
    """Create a temporary in-memory database for testing.

    Yields:
        Initialized Database instance.
    """
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def file_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed database using the connection pool."""
    db = Database(str(tmp_path / "agentsafe.db"), pool_size=2)
    db.initialize()
    yield db
    db.close()


# =============================================================================
# Policy Fixtures
# =============================================================================


@pytest.fixture
def pii_rule():
    return new_rule(RuleType.PII, id="pii", patterns=["email", "phone"])


@pytest.fixture
def budget_rule():
    return new_rule(RuleType.BUDGET, id="budget", limit=100)


@pytest.fixture
def content_rule():
    return new_rule(RuleType.CONTENT, id="content", keywords=["confidential"])


@pytest.fixture
def scenario_policy(pii_rule, budget_rule) -> PolicyConfig:
    """Policy with one PII rule and one BUDGET rule (limit 100)."""
    policy = PolicyConfig(pii_redaction=False, jailbreak_detection=False)
    policy.add_rule(pii_rule)
    policy.add_rule(budget_rule)
    return policy


@pytest.fixture
def policy_yaml(tmp_path: Path) -> Path:
    """Write a policy file with a content filter and a PII rule."""
    path = tmp_path / "policy.yaml"
    path.write_text(
        """
variables:
  monthly_limit: 50

maxBudget: 50
advancedRules:
  - id: no-secrets
    type: CONTENT
    name: No secrets
    severity: high
    config:
      keywords: [confidential]
  - id: mask-pii
    type: PII
    config:
      patterns: [email, phone]
  - id: budget
    type: BUDGET
    config:
      limit: ${monthly_limit}
""",
        encoding="utf-8",
    )
    return path


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def policy_engine() -> Generator[PolicyEngine, None, None]:
    engine = PolicyEngine()
    yield engine
    engine.close()


@pytest.fixture
def policy_service() -> TenantPolicyService:
    return TenantPolicyService(InMemoryPolicyStore())


@pytest.fixture
def ledger() -> MeteringLedger:
    return MeteringLedger()


@pytest.fixture
def recorder() -> AuditRecorder:
    return AuditRecorder()


@pytest.fixture
def provider() -> ProviderConfig:
    """Provider priced at 0.01 per thousand tokens."""
    return ProviderConfig(
        id="test-llm",
        name="Test LLM",
        provider=ProviderKind.CUSTOM,
        models=("test-model",),
        selected_model="test-model",
        cost_per_1k=0.01,
    )


@pytest.fixture
def make_gateway(
    policy_engine: PolicyEngine,
    policy_service: TenantPolicyService,
    ledger: MeteringLedger,
    recorder: AuditRecorder,
    provider: ProviderConfig,
) -> Callable[..., SafetyGateway]:
    """Factory for gateways sharing the fixture components.

    Keyword arguments are passed to SafetyGateway, so tests can swap the
    adapter or the timeout.
    """

    def factory(adapter=None, **kwargs) -> SafetyGateway:
        return SafetyGateway(
            engine=policy_engine,
            policies=policy_service,
            ledger=ledger,
            recorder=recorder,
            adapter=adapter or StaticAdapter(text="OK", tokens=4000),
            providers=[provider],
            **kwargs,
        )

    return factory


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> AgentSafeConfig:
    """Test profile configuration with an in-memory database."""
    return get_test_config()

"""
Service assembly for the Agent-SAFE Grid entry points.

Builds the database, repositories, policy service, metering ledger, audit
recorder, policy engine and gateway from one AgentSafeConfig, so the HTTP
server and the CLI run on the same wiring.
"""

import logging
from dataclasses import dataclass

from agentsafe.adapters.base import (
    DEFAULT_PROVIDERS,
    EchoAdapter,
    ModelAdapter,
    ProviderConfig,
)
from agentsafe.audit.recorder import AuditRecorder
from agentsafe.audit.verify import AuditVerifier
from agentsafe.config.schema import AgentSafeConfig
from agentsafe.engine.engine import PolicyEngine
from agentsafe.engine.service import TenantPolicyService
from agentsafe.gateway import SafetyGateway
from agentsafe.metering.ledger import MeteringLedger
from agentsafe.storage.database import Database
from agentsafe.storage.repositories import (
    AuditRepository,
    MeteringRepository,
    PolicyRepository,
)

logger = logging.getLogger("agentsafe.services")


def load_providers(config: AgentSafeConfig) -> list[ProviderConfig]:
    """
    Return the configured providers, or the built-in set when none are.

    Providers without an explicit price use the configured default.
    """
    if not config.providers:
        return list(DEFAULT_PROVIDERS)
    providers = []
    for data in config.providers:
        data = dict(data)
        if "cost_per_1k" not in data and "costPer1k" not in data:
            data["cost_per_1k"] = config.enforcement.default_cost_per_1k
        providers.append(ProviderConfig.from_dict(data))
    return providers


@dataclass
class Services:
    """The assembled components of a running Agent-SAFE Grid instance."""

    config: AgentSafeConfig
    database: Database
    policies: TenantPolicyService
    ledger: MeteringLedger
    recorder: AuditRecorder
    verifier: AuditVerifier
    audit_repository: AuditRepository
    engine: PolicyEngine
    gateway: SafetyGateway

    @classmethod
    def from_config(
        cls,
        config: AgentSafeConfig,
        adapter: ModelAdapter | None = None,
    ) -> "Services":
        """
        Build and initialize every component.

        Args:
            config: Loaded configuration.
            adapter: Model adapter for chat turns. Defaults to EchoAdapter.

        Raises:
            StorageError: If the database cannot be initialized.
            ValidationError: If a configured provider is invalid.
        """
        database = Database(
            path=config.database.path,
            pool_size=config.database.pool_size,
            timeout=config.database.timeout_seconds,
        )
        database.initialize()
        logger.info(f"Database initialized: {config.database.path}")

        audit_repository = AuditRepository(database)
        policies = TenantPolicyService(PolicyRepository(database))
        ledger = MeteringLedger(MeteringRepository(database))
        recorder = AuditRecorder(
            salt=config.audit.salt,
            chain_hashes=config.audit.chain_hashes,
            store=audit_repository,
        )
        engine = PolicyEngine(parallel_prescreen=config.enforcement.parallel_prescreen)
        gateway = SafetyGateway(
            engine=engine,
            policies=policies,
            ledger=ledger,
            recorder=recorder,
            adapter=adapter or EchoAdapter(),
            providers=load_providers(config),
            timeout=config.enforcement.upstream_timeout_seconds,
            chars_per_token=config.enforcement.chars_per_token,
            max_message_length=config.enforcement.max_message_length,
        )
        return cls(
            config=config,
            database=database,
            policies=policies,
            ledger=ledger,
            recorder=recorder,
            verifier=AuditVerifier(salt=config.audit.salt),
            audit_repository=audit_repository,
            engine=engine,
            gateway=gateway,
        )

    def close(self) -> None:
        self.engine.close()
        self.database.close()

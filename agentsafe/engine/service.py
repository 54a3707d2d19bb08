"""
Tenant policy service.

Reads and saves tenant policies through a tenant store. Saving is the only
point where a policy enters the system, so it is where malformed rules are
rejected and the derived legacy flags are recomputed.
"""

import logging
import threading
from typing import Any, Protocol

from agentsafe.engine.validator import PolicyValidator, ValidationResult
from agentsafe.exceptions import ConfigurationError, StorageError
from agentsafe.models.policy import PolicyConfig

logger = logging.getLogger("agentsafe.engine.service")


class PolicyStore(Protocol):
    """Persistence of policy documents keyed by tenant id."""

    def get_policy(self, tenant_id: str) -> dict[str, Any] | None:
        """Return the stored policy document, or None."""
        ...

    def save_policy(self, tenant_id: str, document: dict[str, Any]) -> None:
        """Insert or replace the policy document of a tenant."""
        ...


class InMemoryPolicyStore:
    """Process-local PolicyStore, used by tests and the CLI."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get_policy(self, tenant_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(tenant_id)
            return dict(document) if document is not None else None

    def save_policy(self, tenant_id: str, document: dict[str, Any]) -> None:
        with self._lock:
            self._documents[tenant_id] = dict(document)


def default_policy() -> PolicyConfig:
    """Policy of a tenant that never saved one."""
    return PolicyConfig(
        pii_redaction=True,
        jailbreak_detection=True,
        topic_constraint=False,
        audit_logging=True,
        max_budget=100.0,
        advanced_rules=[],
    )


class TenantPolicyService:
    """
    Loads and saves tenant policies.

    Example:
        Saving a policy with a budget rule::

            service = TenantPolicyService(InMemoryPolicyStore())
            policy = service.load("tenant-a")
            policy.add_rule(new_rule(RuleType.BUDGET, limit=50))
            service.save("tenant-a", policy)
    """

    def __init__(
        self,
        store: PolicyStore | None = None,
        validator: PolicyValidator | None = None,
    ) -> None:
        self._store = store or InMemoryPolicyStore()
        self._validator = validator or PolicyValidator()

    @property
    def store(self) -> PolicyStore:
        return self._store

    def load(self, tenant_id: str) -> PolicyConfig:
        """
        Load the policy of a tenant.

        Args:
            tenant_id: The tenant.

        Returns:
            The stored policy, or the default policy when none is stored.

        Raises:
            StorageError: If the stored document cannot be decoded.
        """
        document = self._store.get_policy(tenant_id)
        if document is None:
            return default_policy()
        try:
            return PolicyConfig.from_dict(document)
        except ConfigurationError as e:
            raise StorageError(
                f"Stored policy of tenant {tenant_id} is invalid: {e.message}",
                details={"tenant_id": tenant_id, **e.details},
            ) from e

    def validate(self, policy: PolicyConfig | dict[str, Any]) -> ValidationResult:
        """Validate a policy or policy document without saving it."""
        return self._validator.validate(policy)

    def save(
        self, tenant_id: str, policy: PolicyConfig | dict[str, Any]
    ) -> tuple[PolicyConfig, ValidationResult]:
        """
        Validate, normalise and store the policy of a tenant.

        When the policy has advanced rules, the legacy flags are recomputed
        from them before storing. A policy without advanced rules keeps its
        flags as written.

        Args:
            tenant_id: The tenant.
            policy: A PolicyConfig or its document form.

        Returns:
            Tuple of (stored policy, validation result with warnings).

        Raises:
            ConfigurationError: If the policy has validation errors. Nothing
                is stored in that case.
        """
        result = self._validator.validate(policy)
        if not result.valid or result.policy is None:
            logger.warning(
                f"Rejected policy for tenant {tenant_id}: {len(result.errors)} error(s)"
            )
            result.raise_for_errors()
            raise ConfigurationError("Policy could not be parsed")

        stored = result.policy.copy()
        if stored.advanced_rules:
            stored.recompute_derived()
        self._store.save_policy(tenant_id, stored.to_dict())
        logger.info(
            f"Saved policy for tenant {tenant_id} "
            f"({len(stored.advanced_rules)} rule(s), {len(result.warnings)} warning(s))"
        )
        return stored, result

"""
Metering ledger for Agent-SAFE Grid.

Budget accounting is a two-phase check/commit:

1. Check: before the model call, the BUDGET rule compares the ledger's
   total cost plus a *projected* cost for the turn against its limit.
2. Commit: after the call returns, the ledger is debited with the *actual*
   cost computed from the token count the model reported.

Projected and actual cost can differ. The ledger itself never blocks a
turn, and ``budget_remaining`` may go negative.

All updates for one tenant are serialised by a per-tenant lock, so two
turns completing at the same time never lose an increment.
"""

import logging
import math
import threading
import weakref
from dataclasses import replace
from typing import Protocol

from agentsafe.exceptions import ValidationError
from agentsafe.models.metering import MeteringStats

logger = logging.getLogger("agentsafe.metering")


def estimate_cost(tokens: int, cost_per_1k: float) -> float:
    """Return the cost of ``tokens`` at ``cost_per_1k`` per thousand tokens."""
    return tokens / 1000 * cost_per_1k


def project_tokens(text: str, chars_per_token: int = 4) -> int:
    """Estimate the token count of ``text`` as ceil(len / chars_per_token)."""
    if chars_per_token <= 0:
        raise ValueError("chars_per_token must be positive")
    return math.ceil(len(text) / chars_per_token)


def record_usage(stats: MeteringStats, tokens: int, cost_per_1k: float) -> MeteringStats:
    """
    Apply one completed turn to a tenant's counters.

    Args:
        stats: Counters before the turn.
        tokens: Token count reported for the turn. Non-negative integer.
        cost_per_1k: Price per thousand tokens. Non-negative.

    Returns:
        New counters with one more request, the tokens and cost added and
        the cost debited from the remaining budget.

    Raises:
        ValidationError: If tokens or cost_per_1k is invalid.
    """
    if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens < 0:
        raise ValidationError(
            "tokens must be a non-negative integer", details={"tokens": tokens}
        )
    if (
        isinstance(cost_per_1k, bool)
        or not isinstance(cost_per_1k, (int, float))
        or not math.isfinite(cost_per_1k)
        or cost_per_1k < 0
    ):
        raise ValidationError(
            "cost_per_1k must be a non-negative number",
            details={"cost_per_1k": cost_per_1k},
        )

    cost = estimate_cost(tokens, cost_per_1k)
    return replace(
        stats,
        total_requests=stats.total_requests + 1,
        total_tokens=stats.total_tokens + tokens,
        total_cost=stats.total_cost + cost,
        budget_remaining=stats.budget_remaining - cost,
    )


class MeteringStore(Protocol):
    """Persistence of metering counters keyed by tenant id."""

    def get_stats(self, tenant_id: str) -> MeteringStats | None:
        """Return the stored counters, or None."""
        ...

    def save_stats(self, tenant_id: str, stats: MeteringStats) -> None:
        """Insert or replace the counters of a tenant."""
        ...


class MeteringLedger:
    """
    Per-tenant usage counters with serialised updates.

    When a store is given, every update is written through it inside the
    tenant's critical section; the in-memory counters change only after the
    write succeeded.

    A tenant's lock exists only while an update holds or awaits it. The
    counters themselves stay cached, one record per tenant opened.

    Example:
        Recording a turn::

            ledger = MeteringLedger()
            ledger.open("tenant-a", max_budget=100.0)
            stats = ledger.record("tenant-a", tokens=4000, cost_per_1k=0.01)
            print(stats.budget_remaining)  # 99.96
    """

    def __init__(
        self,
        store: MeteringStore | None = None,
        default_budget: float = 100.0,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            store: Optional persistent store for the counters.
            default_budget: Starting balance of tenants opened without a
                max budget.
        """
        self._store = store
        self._default_budget = default_budget
        self._stats: dict[str, MeteringStats] = {}
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[tenant_id] = lock
            return lock

    def _load(self, tenant_id: str, max_budget: float | None) -> MeteringStats:
        """Current counters of a tenant. Caller holds the tenant lock."""
        stats = self._stats.get(tenant_id)
        if stats is None and self._store is not None:
            stats = self._store.get_stats(tenant_id)
        if stats is None:
            budget = self._default_budget if max_budget is None else max_budget
            stats = MeteringStats(budget_remaining=budget)
        return stats

    def _commit(self, tenant_id: str, stats: MeteringStats) -> None:
        if self._store is not None:
            self._store.save_stats(tenant_id, stats)
        self._stats[tenant_id] = stats

    def open(self, tenant_id: str, max_budget: float | None = None) -> MeteringStats:
        """
        Return the counters of a tenant, creating them if needed.

        A new tenant's remaining budget starts at ``max_budget``. Existing
        counters are left untouched.
        """
        with self._lock_for(tenant_id):
            known = tenant_id in self._stats
            stats = self._load(tenant_id, max_budget)
            if not known:
                self._commit(tenant_id, stats)
            return stats

    def snapshot(self, tenant_id: str) -> MeteringStats:
        """Return the current counters of a tenant without creating them."""
        with self._lock_for(tenant_id):
            return self._load(tenant_id, None)

    def record(
        self,
        tenant_id: str,
        tokens: int,
        cost_per_1k: float,
        max_budget: float | None = None,
    ) -> MeteringStats:
        """
        Debit one completed turn.

        Args:
            tenant_id: The tenant.
            tokens: Actual token count reported by the model.
            cost_per_1k: Price of the provider used.
            max_budget: Starting balance if the tenant has no counters yet.

        Returns:
            The updated counters.

        Raises:
            ValidationError: If tokens or cost_per_1k is invalid. The
                counters are unchanged.
        """
        with self._lock_for(tenant_id):
            current = self._load(tenant_id, max_budget)
            updated = record_usage(current, tokens, cost_per_1k)
            self._commit(tenant_id, updated)

        if updated.budget_remaining < 0 <= current.budget_remaining:
            logger.warning(f"Tenant {tenant_id} budget is exhausted")
        return updated

    def reset(self, tenant_id: str, max_budget: float | None = None) -> MeteringStats:
        """Start a new budget period: zero the counters and restore the budget."""
        with self._lock_for(tenant_id):
            budget = self._default_budget if max_budget is None else max_budget
            stats = MeteringStats(budget_remaining=budget)
            self._commit(tenant_id, stats)
        logger.info(f"Reset metering for tenant {tenant_id}")
        return stats

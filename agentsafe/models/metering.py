"""
Metering counters for a tenant.
"""

from dataclasses import dataclass
from typing import Any

from agentsafe.models.base import model_to_dict


@dataclass(frozen=True)
class MeteringStats:
    """
    Running usage counters of one tenant.

    ``budget_remaining`` starts at the tenant's max budget and is debited by
    the actual cost of each completed turn. It is a live ledger balance, not
    a percentage, and it may go negative: blocking over-budget turns is the
    BUDGET rule's job, before the model call.

    Attributes:
        total_requests: Completed model turns.
        total_tokens: Tokens reported by the model for those turns.
        total_cost: Cumulative cost of those turns.
        budget_remaining: Budget balance after the debits.
    """

    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    budget_remaining: float = 100.0

    def utilization(self, limit: float) -> float:
        """Return cumulative cost as a percentage of ``limit``."""
        if limit <= 0:
            return 100.0
        return self.total_cost / limit * 100.0

    def to_dict(self) -> dict[str, Any]:
        """Convert the counters to a dictionary."""
        return model_to_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MeteringStats":
        return cls(
            total_requests=int(data.get("total_requests", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
            total_cost=float(data.get("total_cost", 0.0)),
            budget_remaining=float(data.get("budget_remaining", 100.0)),
        )

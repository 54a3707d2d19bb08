"""
Metering for Agent-SAFE Grid.

Tracks cumulative token and cost usage per tenant against a budget.
"""

from agentsafe.metering.ledger import (
    MeteringLedger,
    MeteringStore,
    estimate_cost,
    project_tokens,
    record_usage,
)

__all__ = [
    "MeteringLedger",
    "MeteringStore",
    "estimate_cost",
    "project_tokens",
    "record_usage",
]

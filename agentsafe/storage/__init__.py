"""
Storage layer for Agent-SAFE Grid.

This module provides SQLite connectivity, the schema, and the repositories
that persist tenant policies, metering counters and audit logs.
"""

from agentsafe.storage.database import Database
from agentsafe.storage.repositories import (
    AuditRepository,
    MeteringRepository,
    PolicyRepository,
)

__all__ = [
    "Database",
    "PolicyRepository",
    "MeteringRepository",
    "AuditRepository",
]

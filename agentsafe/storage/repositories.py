"""
Repository classes for Agent-SAFE Grid data access.

The repositories implement the store protocols the core consumes:
PolicyRepository is the tenant store of the policy service,
MeteringRepository backs the metering ledger and AuditRepository backs the
audit recorder.
"""

import json
import sqlite3
from typing import Any

from agentsafe.exceptions import StorageError
from agentsafe.models.audit import AuditLogEntry
from agentsafe.models.base import utc_now
from agentsafe.models.metering import MeteringStats
from agentsafe.storage.database import Database


class BaseRepository:
    """
    Base class for all repositories.

    Provides common functionality for database operations.
    """

    def __init__(self, db: Database) -> None:
        """
        Initialize the repository.

        Args:
            db: The Database instance to use for operations.
        """
        self.db = db

    def _serialize_json(self, value: Any) -> str | None:
        """Serialize a value to JSON string."""
        if value is None:
            return None
        return json.dumps(value)

    def _deserialize_json(self, value: str | None) -> Any:
        """Deserialize a JSON string to a Python object."""
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise StorageError(f"Stored document is not valid JSON: {e}") from e


class PolicyRepository(BaseRepository):
    """Stores one policy document per tenant."""

    def get_policy(self, tenant_id: str) -> dict[str, Any] | None:
        """
        Get the policy document of a tenant.

        Returns:
            The camelCase policy document, or None if the tenant has none.
        """
        row = self.db.execute_one(
            "SELECT content FROM tenant_policies WHERE tenant_id = ?", (tenant_id,)
        )
        return self._deserialize_json(row["content"]) if row else None

    def save_policy(self, tenant_id: str, document: dict[str, Any]) -> None:
        """Insert or replace the policy document of a tenant."""
        self.db.execute_write(
            """
            INSERT INTO tenant_policies (tenant_id, content, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(tenant_id) DO UPDATE SET
                content = excluded.content,
                updated_at = excluded.updated_at
            """,
            (tenant_id, self._serialize_json(document), utc_now().isoformat()),
        )

    def list_tenants(self) -> list[str]:
        """Return the ids of tenants with a stored policy."""
        rows = self.db.execute("SELECT tenant_id FROM tenant_policies ORDER BY tenant_id")
        return [row["tenant_id"] for row in rows]


class MeteringRepository(BaseRepository):
    """Stores the metering counters of each tenant."""

    def get_stats(self, tenant_id: str) -> MeteringStats | None:
        row = self.db.execute_one(
            """
            SELECT total_requests, total_tokens, total_cost, budget_remaining
            FROM metering_stats WHERE tenant_id = ?
            """,
            (tenant_id,),
        )
        return MeteringStats.from_dict(row) if row else None

    def save_stats(self, tenant_id: str, stats: MeteringStats) -> None:
        self.db.execute_write(
            """
            INSERT INTO metering_stats
                (tenant_id, total_requests, total_tokens, total_cost,
                 budget_remaining, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(tenant_id) DO UPDATE SET
                total_requests = excluded.total_requests,
                total_tokens = excluded.total_tokens,
                total_cost = excluded.total_cost,
                budget_remaining = excluded.budget_remaining,
                updated_at = excluded.updated_at
            """,
            (
                tenant_id,
                stats.total_requests,
                stats.total_tokens,
                stats.total_cost,
                stats.budget_remaining,
                utc_now().isoformat(),
            ),
        )


class AuditRepository(BaseRepository):
    """
    Append-only storage of audit entries.

    Entries are never updated or deleted; the schema enforces it with
    triggers. Each tenant's entries are numbered by a ``sequence`` column
    assigned on insert.
    """

    _COLUMNS = (
        "id, tenant_id, sequence, timestamp, action, user, details, "
        "status, hash, rule_id, previous_hash"
    )

    def append_entry(self, entry: AuditLogEntry) -> int:
        """
        Append an entry to its tenant's log.

        Returns:
            The sequence number assigned to the entry.

        Raises:
            StorageError: If the insert fails. Nothing is appended.
        """
        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    "SELECT COALESCE(MAX(sequence) + 1, 0) FROM audit_log WHERE tenant_id = ?",
                    (entry.tenant_id,),
                ).fetchone()
                sequence = int(row[0])
                conn.execute(
                    f"INSERT INTO audit_log ({self._COLUMNS}) "
                    f"VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.id,
                        entry.tenant_id,
                        sequence,
                        entry.timestamp,
                        entry.action,
                        entry.user,
                        entry.details,
                        entry.status.value,
                        entry.hash,
                        entry.rule_id,
                        entry.previous_hash,
                    ),
                )
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to append audit entry: {e}",
                details={"tenant_id": entry.tenant_id, "entry_id": entry.id},
            ) from e
        return sequence

    def list_entries(
        self, tenant_id: str, limit: int | None = None, offset: int = 0
    ) -> list[AuditLogEntry]:
        """Return a tenant's entries in insertion order."""
        rows = self.db.execute(
            f"SELECT {self._COLUMNS} FROM audit_log WHERE tenant_id = ? "
            f"ORDER BY sequence LIMIT ? OFFSET ?",
            (tenant_id, -1 if limit is None else limit, offset),
        )
        return [AuditLogEntry.from_dict(row) for row in rows]

    def last_entry(self, tenant_id: str) -> AuditLogEntry | None:
        row = self.db.execute_one(
            f"SELECT {self._COLUMNS} FROM audit_log WHERE tenant_id = ? "
            f"ORDER BY sequence DESC LIMIT 1",
            (tenant_id,),
        )
        return AuditLogEntry.from_dict(row) if row else None

    def count_entries(self, tenant_id: str) -> int:
        row = self.db.execute_one(
            "SELECT COUNT(*) AS n FROM audit_log WHERE tenant_id = ?", (tenant_id,)
        )
        return int(row["n"]) if row else 0

    def count_by_action(self, tenant_id: str) -> dict[str, int]:
        """Return entry counts per action tag for a tenant."""
        rows = self.db.execute(
            "SELECT action, COUNT(*) AS n FROM audit_log WHERE tenant_id = ? GROUP BY action",
            (tenant_id,),
        )
        return {row["action"]: int(row["n"]) for row in rows}

"""
Unit tests for the Agent-SAFE Grid storage layer.

This module tests the Database class and the policy, metering and audit
repositories.
"""

import threading

import pytest

from agentsafe.exceptions import StorageError
from agentsafe.models.audit import AuditLogEntry, AuditStatus
from agentsafe.models.metering import MeteringStats
from agentsafe.storage.database import Database
from agentsafe.storage.repositories import (
    AuditRepository,
    MeteringRepository,
    PolicyRepository,
)
from agentsafe.storage.schema import SCHEMA_VERSION, TABLES


def make_entry(tenant_id: str = "tenant-a", action: str = "MODEL_INFERENCE", **kwargs) -> AuditLogEntry:
    values = {
        "tenant_id": tenant_id,
        "action": action,
        "user": "user_1",
        "details": "Generated 10 tokens via test-model",
        "status": AuditStatus.SUCCESS,
        "hash": "ab" * 32,
        "timestamp": 1700000000000,
    }
    values.update(kwargs)
    return AuditLogEntry(**values)


# =============================================================================
# Database Tests
# =============================================================================


class TestDatabase:
    """Tests for Database."""

    def test_initialize_creates_tables(self, temp_db: Database) -> None:
        rows = temp_db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        names = {row["name"] for row in rows}
        assert set(TABLES) <= names

    def test_schema_version(self, temp_db: Database) -> None:
        assert temp_db.get_schema_version() == SCHEMA_VERSION

    def test_uninitialized_version_is_zero(self) -> None:
        with Database(":memory:") as db:
            assert db.get_schema_version() == 0

    def test_health_check(self, temp_db: Database) -> None:
        assert temp_db.health_check()

    def test_file_database_persists(self, tmp_path) -> None:
        path = tmp_path / "nested" / "agentsafe.db"
        with Database(path) as db:
            db.initialize()
            PolicyRepository(db).save_policy("t", {"maxBudget": 5})
        with Database(path) as db:
            assert PolicyRepository(db).get_policy("t") == {"maxBudget": 5}

    def test_transaction_rolls_back(self, temp_db: Database) -> None:
        with pytest.raises(RuntimeError):
            with temp_db.transaction() as conn:
                conn.execute(
                    "INSERT INTO tenant_policies (tenant_id, content) VALUES (?, ?)",
                    ("t", "{}"),
                )
                raise RuntimeError("abort")
        assert temp_db.execute("SELECT * FROM tenant_policies") == []

    def test_bad_sql(self, temp_db: Database) -> None:
        with pytest.raises(StorageError):
            temp_db.execute("SELECT * FROM missing_table")


# =============================================================================
# Repository Tests
# =============================================================================


class TestPolicyRepository:
    """Tests for PolicyRepository."""

    def test_missing(self, temp_db: Database) -> None:
        assert PolicyRepository(temp_db).get_policy("nobody") is None

    def test_upsert(self, temp_db: Database) -> None:
        repository = PolicyRepository(temp_db)
        repository.save_policy("b", {"maxBudget": 1})
        repository.save_policy("a", {"maxBudget": 2})
        repository.save_policy("a", {"maxBudget": 3})
        assert repository.get_policy("a") == {"maxBudget": 3}
        assert repository.list_tenants() == ["a", "b"]

    def test_corrupt_json(self, temp_db: Database) -> None:
        temp_db.execute_write(
            "INSERT INTO tenant_policies (tenant_id, content) VALUES (?, ?)", ("t", "{nope")
        )
        with pytest.raises(StorageError):
            PolicyRepository(temp_db).get_policy("t")


class TestMeteringRepository:
    """Tests for MeteringRepository."""

    def test_round_trip(self, temp_db: Database) -> None:
        repository = MeteringRepository(temp_db)
        assert repository.get_stats("t") is None
        stats = MeteringStats(total_requests=2, total_tokens=30, total_cost=0.5, budget_remaining=-1.5)
        repository.save_stats("t", stats)
        assert repository.get_stats("t") == stats


class TestAuditRepository:
    """Tests for AuditRepository."""

    def test_sequence_per_tenant(self, temp_db: Database) -> None:
        repository = AuditRepository(temp_db)
        assert repository.append_entry(make_entry("a")) == 0
        assert repository.append_entry(make_entry("a")) == 1
        assert repository.append_entry(make_entry("b")) == 0
        assert repository.count_entries("a") == 2

    def test_list_in_sequence_order(self, temp_db: Database) -> None:
        repository = AuditRepository(temp_db)
        first = make_entry(timestamp=2000)
        second = make_entry(timestamp=1000, action="PII_REDACTION", status=AuditStatus.VIOLATION, rule_id="pii")
        repository.append_entry(first)
        repository.append_entry(second)

        entries = repository.list_entries("tenant-a")
        assert [e.id for e in entries] == [first.id, second.id]
        assert entries[1].status is AuditStatus.VIOLATION
        assert entries[1].rule_id == "pii"
        assert entries[1].sequence == 1
        assert repository.last_entry("tenant-a").id == second.id
        assert repository.list_entries("tenant-a", limit=1, offset=1)[0].id == second.id

    def test_count_by_action(self, temp_db: Database) -> None:
        repository = AuditRepository(temp_db)
        repository.append_entry(make_entry())
        repository.append_entry(make_entry())
        repository.append_entry(make_entry(action="PII_REDACTION"))
        assert repository.count_by_action("tenant-a") == {"MODEL_INFERENCE": 2, "PII_REDACTION": 1}

    @pytest.mark.parametrize(
        "sql",
        [
            "UPDATE audit_log SET details = 'edited'",
            "DELETE FROM audit_log",
        ],
    )
    def test_log_is_append_only(self, temp_db: Database, sql: str) -> None:
        AuditRepository(temp_db).append_entry(make_entry())
        with pytest.raises(StorageError, match="append-only"):
            temp_db.execute_write(sql)
        assert AuditRepository(temp_db).count_entries("tenant-a") == 1

    def test_duplicate_id_rejected(self, temp_db: Database) -> None:
        repository = AuditRepository(temp_db)
        entry = make_entry()
        repository.append_entry(entry)
        with pytest.raises(StorageError):
            repository.append_entry(entry)
        assert repository.count_entries("tenant-a") == 1

    def test_concurrent_appends(self, file_db: Database) -> None:
        """Test that parallel appends get distinct sequence numbers."""
        repository = AuditRepository(file_db)
        sequences: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(10):
                sequence = repository.append_entry(make_entry())
                with lock:
                    sequences.append(sequence)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(sequences) == list(range(40))

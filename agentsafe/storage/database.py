"""
Database connection and management for Agent-SAFE Grid.

This module provides the Database class for managing SQLite database
connections with connection pooling, WAL mode, and thread safety.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from agentsafe.exceptions import StorageError


class Database:
    """
    SQLite database connection manager with connection pooling.

    Attributes:
        path: Path to the SQLite database file.
        pool_size: Maximum number of connections in the pool.
        timeout: Connection timeout in seconds.

    Example:
        Basic usage::

            db = Database("agentsafe.db")
            db.initialize()

            with db.transaction() as conn:
                conn.execute("DELETE FROM metering_stats WHERE tenant_id = ?", ("t",))
    """

    def __init__(
        self,
        path: str | Path = "agentsafe.db",
        pool_size: int = 5,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the database manager.

        Args:
            path: Path to the SQLite database file. ":memory:" gives a
                private in-memory database shared by all pooled users of
                this instance.
            pool_size: Maximum number of connections kept in the pool.
            timeout: Timeout in seconds for acquiring a database lock.
        """
        self.path = Path(path) if str(path) != ":memory:" else ":memory:"
        self.pool_size = pool_size
        self.timeout = timeout

        self._pool: list[sqlite3.Connection] = []
        self._pool_lock = threading.Lock()
        self._initialized = False
        # An in-memory database lives only as long as its connection
        self._shared: sqlite3.Connection | None = None
        self._shared_lock = threading.RLock()

    @property
    def in_memory(self) -> bool:
        return self.path == ":memory:"

    def initialize(self) -> None:
        """
        Create the database file if needed and apply the schema.

        Raises:
            StorageError: If initialization fails.
        """
        from agentsafe.storage.schema import SCHEMA_SQL

        try:
            with self.connection() as conn:
                if not self.in_memory:
                    conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
                conn.executescript(SCHEMA_SQL)
                conn.commit()
            self._initialized = True
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to initialize database: {e}",
                details={"path": str(self.path)},
            ) from e

    def _create_connection(self) -> sqlite3.Connection:
        """
        Create a new database connection with row access by column name.

        Raises:
            StorageError: If connection creation fails.
        """
        if isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.timeout,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            return conn
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to create database connection: {e}",
                details={"path": str(self.path)},
            ) from e

    def _get_connection(self) -> sqlite3.Connection:
        with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        return self._create_connection()

    def _return_connection(self, conn: sqlite3.Connection) -> None:
        with self._pool_lock:
            if len(self._pool) < self.pool_size:
                self._pool.append(conn)
            else:
                conn.close()

    @contextmanager
    def _acquire(self) -> Iterator[sqlite3.Connection]:
        if self.in_memory:
            with self._shared_lock:
                if self._shared is None:
                    self._shared = self._create_connection()
                yield self._shared
            return
        conn = self._get_connection()
        try:
            yield conn
        finally:
            self._return_connection(conn)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection from the pool.

        The connection is returned to the pool when the context exits. If an
        exception occurs, the open transaction is rolled back.

        Yields:
            A database connection.
        """
        with self._acquire() as conn:
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Get a connection that commits on success and rolls back on error.

        The transaction is opened with BEGIN IMMEDIATE, so read-then-write
        sequences inside it cannot interleave with another writer.

        Yields:
            A database connection.
        """
        with self._acquire() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SQL query and return all results as dictionaries.

        Args:
            sql: The SQL query. Must use parameterized placeholders.
            params: Query parameters.

        Returns:
            List of result rows as dictionaries.

        Raises:
            StorageError: If query execution fails.
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute(sql, params or ())
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(
                f"Query execution failed: {e}",
                details={"sql": sql[:100]},
            ) from e

    def execute_one(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Execute a SQL query and return the first row, or None."""
        results = self.execute(sql, params)
        return results[0] if results else None

    def execute_write(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> int:
        """
        Execute a write query (INSERT, UPDATE, DELETE) in its own transaction.

        Returns:
            Number of rows affected by the query.

        Raises:
            StorageError: If query execution fails.
        """
        try:
            with self.transaction() as conn:
                return conn.execute(sql, params or ()).rowcount
        except sqlite3.Error as e:
            raise StorageError(
                f"Write query failed: {e}",
                details={"sql": sql[:100]},
            ) from e

    def health_check(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            self.execute("SELECT 1")
        except StorageError:
            return False
        return True

    def get_schema_version(self) -> int:
        """Return the applied schema version, or 0 if not initialized."""
        try:
            result = self.execute_one(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
        except StorageError:
            return 0
        return result["version"] if result else 0

    def close(self) -> None:
        """Close all connections. Call when shutting down."""
        with self._pool_lock:
            for conn in self._pool:
                conn.close()
            self._pool.clear()
        with self._shared_lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database(path={self.path!r}, pool_size={self.pool_size})"

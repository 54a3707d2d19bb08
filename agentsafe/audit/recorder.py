"""
Audit recorder for Agent-SAFE Grid.

Turns policy decisions and inference events into immutable, hash-stamped
entries appended to a per-tenant log. The signature is

    sha256_hex(signing_input + "-" + timestamp + "-" + salt)

where ``signing_input`` is the content that triggered the entry and
``timestamp`` is in integer milliseconds. With chaining enabled the previous
entry's hash (``genesis`` for the first entry) is appended as a fourth
component, linking every entry to its predecessor.

The log is append-only: the recorder offers no way to change or remove an
entry.
"""

import hashlib
import logging
import threading
import weakref
from dataclasses import replace
from typing import Callable, Protocol

from agentsafe.models.audit import AuditLogEntry, AuditStatus
from agentsafe.models.base import now_ms

logger = logging.getLogger("agentsafe.audit")

GENESIS_HASH = "genesis"
DEFAULT_SALT = "SECRET_KEY_SALT"


def compute_signature(
    content: str,
    timestamp: int,
    salt: str = DEFAULT_SALT,
    previous_hash: str | None = None,
) -> str:
    """
    Compute the audit signature of a piece of content.

    Args:
        content: The content that triggered the entry.
        timestamp: Entry time in integer milliseconds.
        salt: Fixed service salt.
        previous_hash: Hash of the preceding entry when chaining.

    Returns:
        Lowercase hex SHA-256 digest.
    """
    parts = [content, str(timestamp), salt]
    if previous_hash is not None:
        parts.append(previous_hash)
    return hashlib.sha256("-".join(parts).encode("utf-8")).hexdigest()


class AuditStore(Protocol):
    """Durable append-only storage for audit entries."""

    def append_entry(self, entry: AuditLogEntry) -> int:
        """Append an entry and return its sequence number in the tenant log."""
        ...

    def list_entries(
        self, tenant_id: str, limit: int | None = None, offset: int = 0
    ) -> list[AuditLogEntry]:
        """Return a tenant's entries in insertion order."""
        ...

    def last_entry(self, tenant_id: str) -> AuditLogEntry | None:
        """Return the most recent entry of a tenant."""
        ...

    def count_entries(self, tenant_id: str) -> int:
        """Return the number of entries of a tenant."""
        ...


class AuditRecorder:
    """
    Appends signed entries to per-tenant audit logs.

    Appends for one tenant are serialised by a per-tenant lock. Entries of
    one tenant therefore get strictly increasing sequence numbers and
    non-decreasing timestamps, and insertion order is chronological order.

    A tenant's lock exists only while an append holds or awaits it. The
    recorder keeps the last entry of every tenant it has written for, one
    entry per tenant, to chain and order the next append.

    Example:
        Recording a redaction::

            recorder = AuditRecorder()
            entry = recorder.record_entry(
                "tenant-a",
                action="PII_REDACTION",
                user="user_1",
                details="Redacted sensitive PII from user prompt",
                status=AuditStatus.VIOLATION,
                signing_input=original_prompt,
            )
    """

    def __init__(
        self,
        salt: str = DEFAULT_SALT,
        chain_hashes: bool = False,
        store: AuditStore | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """
        Initialize the recorder.

        Args:
            salt: Fixed salt mixed into every signature.
            chain_hashes: Link each entry's hash to the previous entry.
            store: Optional durable store. Without one, logs are kept in
                memory.
            clock: Source of millisecond timestamps.
        """
        self._salt = salt
        self._chain_hashes = chain_hashes
        self._store = store
        self._clock = clock
        self._logs: dict[str, list[AuditLogEntry]] = {}
        self._last: dict[str, AuditLogEntry] = {}
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @property
    def salt(self) -> str:
        return self._salt

    @property
    def chain_hashes(self) -> bool:
        return self._chain_hashes

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[tenant_id] = lock
            return lock

    def _last_entry(self, tenant_id: str) -> AuditLogEntry | None:
        """Most recent entry of a tenant. Caller holds the tenant lock."""
        last = self._last.get(tenant_id)
        if last is None and self._store is not None:
            last = self._store.last_entry(tenant_id)
        return last

    def sign(self, content: str, timestamp: int | None = None) -> tuple[str, int]:
        """
        Sign content outside the log, as done for chat messages.

        Returns:
            Tuple of (signature, timestamp used).
        """
        timestamp = self._clock() if timestamp is None else timestamp
        return compute_signature(content, timestamp, self._salt), timestamp

    def record_entry(
        self,
        tenant_id: str,
        action: str,
        user: str,
        details: str,
        status: AuditStatus,
        signing_input: str,
        rule_id: str | None = None,
    ) -> AuditLogEntry:
        """
        Create, sign and append one entry.

        Args:
            tenant_id: Tenant whose log receives the entry.
            action: Free-form action tag.
            user: Acting user, or provider name for inference entries.
            details: Human-readable description.
            status: success, violation or error.
            signing_input: The content that triggered the entry. Only its
                hash is kept.
            rule_id: Rule that caused a violation entry.

        Returns:
            The appended entry.

        Raises:
            StorageError: If the durable store rejects the append. Nothing
                is appended in that case.
        """
        with self._lock_for(tenant_id):
            last = self._last_entry(tenant_id)
            timestamp = self._clock()
            if last is not None and timestamp < last.timestamp:
                timestamp = last.timestamp

            previous_hash = None
            if self._chain_hashes:
                previous_hash = last.hash if last is not None else GENESIS_HASH

            entry = AuditLogEntry(
                tenant_id=tenant_id,
                timestamp=timestamp,
                action=action,
                user=user,
                details=details,
                status=status,
                hash=compute_signature(signing_input, timestamp, self._salt, previous_hash),
                rule_id=rule_id,
                previous_hash=previous_hash,
            )

            if self._store is not None:
                sequence = self._store.append_entry(entry)
            else:
                sequence = len(self._logs.get(tenant_id, []))
            entry = replace(entry, sequence=sequence)
            if self._store is None:
                self._logs.setdefault(tenant_id, []).append(entry)
            self._last[tenant_id] = entry

        logger.debug(f"Audit {action} ({status.value}) recorded for tenant {tenant_id}")
        return entry

    def entries(
        self, tenant_id: str, limit: int | None = None, offset: int = 0
    ) -> list[AuditLogEntry]:
        """Return a tenant's entries in insertion order."""
        if self._store is not None:
            return self._store.list_entries(tenant_id, limit=limit, offset=offset)
        with self._lock_for(tenant_id):
            log = list(self._logs.get(tenant_id, []))
        end = None if limit is None else offset + limit
        return log[offset:end]

    def count(self, tenant_id: str) -> int:
        """Number of entries in a tenant's log."""
        if self._store is not None:
            return self._store.count_entries(tenant_id)
        with self._lock_for(tenant_id):
            return len(self._logs.get(tenant_id, []))

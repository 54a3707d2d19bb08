"""
Audit log entry model.

Entries are append-only. An entry's hash authenticates the content that
triggered it, the timestamp and the salt. With chaining enabled it also
covers the previous entry's hash, which makes the per-tenant sequence
tamper-evident as a whole.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentsafe.models.base import generate_uuid, model_to_dict, now_ms


class AuditStatus(Enum):
    """Outcome recorded by an audit entry."""

    SUCCESS = "success"
    """The event completed normally."""

    VIOLATION = "violation"
    """A rule fired: PII was redacted or a rule blocked the turn."""

    ERROR = "error"
    """The model call failed or timed out."""


class AuditAction:
    """Action tags written by the turn pipeline. Actions are free-form."""

    PII_REDACTION = "PII_REDACTION"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    MODEL_INFERENCE = "MODEL_INFERENCE"
    MODEL_ERROR = "MODEL_ERROR"


@dataclass(frozen=True)
class AuditLogEntry:
    """
    An immutable, hash-stamped record of one policy or inference event.

    Attributes:
        id: Unique entry identifier.
        tenant_id: Tenant whose log the entry belongs to.
        timestamp: Integer milliseconds since the epoch, part of the hash.
        action: Free-form tag such as PII_REDACTION or MODEL_INFERENCE.
        user: Acting user, or the provider name for inference entries.
        details: Human-readable description.
        status: success, violation or error.
        hash: SHA-256 hex signature.
        rule_id: Rule that caused a violation entry.
        previous_hash: Hash of the preceding entry when chaining is on.
        sequence: Position in the tenant log, assigned when appended.
    """

    tenant_id: str
    action: str
    user: str
    details: str
    status: AuditStatus
    hash: str
    id: str = field(default_factory=generate_uuid)
    timestamp: int = field(default_factory=now_ms)
    rule_id: str | None = None
    previous_hash: str | None = None
    sequence: int | None = None

    def to_dict(self, exclude_none: bool = False) -> dict[str, Any]:
        """Convert the entry to a dictionary."""
        return model_to_dict(self, exclude_none)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditLogEntry":
        """Create an entry from a dictionary or database row."""
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            timestamp=int(data["timestamp"]),
            action=data["action"],
            user=data["user"],
            details=data["details"],
            status=AuditStatus(data["status"]),
            hash=data["hash"],
            rule_id=data.get("rule_id"),
            previous_hash=data.get("previous_hash"),
            sequence=data.get("sequence"),
        )

"""
Audit trail for Agent-SAFE Grid.

The recorder appends signed entries to per-tenant logs; the verifier and
the CSV export serve the audit sink.
"""

from agentsafe.audit.export import CSV_COLUMNS, export_csv
from agentsafe.audit.recorder import (
    DEFAULT_SALT,
    GENESIS_HASH,
    AuditRecorder,
    AuditStore,
    compute_signature,
)
from agentsafe.audit.verify import AuditVerifier, VerificationReport

__all__ = [
    "AuditRecorder",
    "AuditStore",
    "AuditVerifier",
    "CSV_COLUMNS",
    "DEFAULT_SALT",
    "GENESIS_HASH",
    "VerificationReport",
    "compute_signature",
    "export_csv",
]

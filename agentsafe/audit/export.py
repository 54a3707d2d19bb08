"""
CSV export of audit logs.
"""

import csv
import io
from typing import IO, Iterable

from agentsafe.models.audit import AuditLogEntry

CSV_COLUMNS = ["id", "timestamp", "action", "user", "details", "status", "hash"]


def export_csv(entries: Iterable[AuditLogEntry], stream: IO[str] | None = None) -> str:
    """
    Write audit entries as CSV.

    Args:
        entries: Entries in insertion order.
        stream: Optional text stream to write to as well.

    Returns:
        The CSV document, header row first.
    """
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for entry in entries:
        writer.writerow({
            "id": entry.id,
            "timestamp": entry.timestamp,
            "action": entry.action,
            "user": entry.user,
            "details": entry.details,
            "status": entry.status.value,
            "hash": entry.hash,
        })
    document = output.getvalue()
    if stream is not None:
        stream.write(document)
    return document

"""
Audit verification for Agent-SAFE Grid.

Verification happens on the sink side: given a stored entry and the original
content that triggered it, the signature is recomputed and compared. For
chained logs the linkage between consecutive entries can be checked from
the stored hashes alone.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from agentsafe.audit.recorder import DEFAULT_SALT, GENESIS_HASH, compute_signature
from agentsafe.exceptions import IntegrityError
from agentsafe.models.audit import AuditLogEntry
from agentsafe.models.base import utc_now

logger = logging.getLogger("agentsafe.audit.verify")


@dataclass
class VerificationReport:
    """
    Outcome of verifying a sequence of audit entries.

    Every failing entry is listed; none is dropped.

    Attributes:
        total_entries: Entries examined.
        verified_entries: Entries whose signature matched.
        failures: IntegrityErrors for entries whose signature did not match.
        missing_content: Ids of entries with no original content supplied.
        chain_issues: Linkage problems between consecutive entries.
    """

    total_entries: int = 0
    verified_entries: int = 0
    failures: list[IntegrityError] = field(default_factory=list)
    missing_content: list[str] = field(default_factory=list)
    chain_issues: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.failures and not self.chain_issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified_at": utc_now().isoformat(),
            "is_valid": self.is_valid,
            "total_entries": self.total_entries,
            "verified_entries": self.verified_entries,
            "failures": [
                {"entry_id": f.entry_id, "expected": f.expected, "actual": f.actual}
                for f in self.failures
            ],
            "missing_content": list(self.missing_content),
            "chain_issues": list(self.chain_issues),
        }


class AuditVerifier:
    """
    Recomputes and checks audit signatures.

    Example:
        Verifying one entry against its original content::

            verifier = AuditVerifier(salt="SECRET_KEY_SALT")
            verifier.verify_entry(entry, original_prompt)
    """

    def __init__(self, salt: str = DEFAULT_SALT) -> None:
        self._salt = salt

    def expected_hash(self, entry: AuditLogEntry, original_content: str) -> str:
        """Recompute the signature an entry should carry."""
        return compute_signature(
            original_content, entry.timestamp, self._salt, entry.previous_hash
        )

    def verify_entry(self, entry: AuditLogEntry, original_content: str) -> bool:
        """
        Verify one entry against the content that triggered it.

        Returns:
            True when the signature matches.

        Raises:
            IntegrityError: If the recomputed hash differs from the stored one.
        """
        expected = self.expected_hash(entry, original_content)
        if expected != entry.hash:
            raise IntegrityError(
                f"Audit entry {entry.id} failed signature verification",
                entry_id=entry.id,
                expected=expected,
                actual=entry.hash,
            )
        return True

    def verify_chain(self, entries: Iterable[AuditLogEntry]) -> list[dict[str, Any]]:
        """
        Check the linkage of a chained log.

        Entries without a ``previous_hash`` were written with chaining off
        and are skipped.

        Returns:
            List of linkage issues, empty when the chain is intact.
        """
        issues: list[dict[str, Any]] = []
        previous: AuditLogEntry | None = None
        for index, entry in enumerate(entries):
            if entry.previous_hash is not None:
                expected = previous.hash if previous is not None else GENESIS_HASH
                if entry.previous_hash != expected:
                    issues.append({
                        "type": "chain_linkage_broken",
                        "entry_id": entry.id,
                        "index": index,
                        "expected_previous": expected,
                        "actual_previous": entry.previous_hash,
                    })
            previous = entry
        return issues

    def verify_log(
        self,
        entries: Iterable[AuditLogEntry],
        contents: Mapping[str, str] | None = None,
    ) -> VerificationReport:
        """
        Verify a sequence of entries.

        Args:
            entries: Entries in insertion order.
            contents: Original content per entry id. Entries without content
                are listed as missing instead of verified.

        Returns:
            VerificationReport listing every failure.
        """
        entries = list(entries)
        contents = contents or {}
        report = VerificationReport(total_entries=len(entries))
        for entry in entries:
            content = contents.get(entry.id)
            if content is None:
                report.missing_content.append(entry.id)
                continue
            try:
                self.verify_entry(entry, content)
            except IntegrityError as e:
                logger.warning(f"Integrity failure for audit entry {entry.id}")
                report.failures.append(e)
            else:
                report.verified_entries += 1
        report.chain_issues = self.verify_chain(entries)
        return report

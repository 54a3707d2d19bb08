"""
PII pattern detectors.

Each pattern class has a compiled regular expression and a fixed
placeholder. Detection is global: every occurrence is replaced, not only
the first one. Classes are applied in a fixed order so that longer digit
runs (card numbers, SSNs) are consumed before the phone pattern sees them.
"""

import re
from dataclasses import dataclass, field
from typing import Callable

EMAIL_PATTERN = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
# 4-4-4-(1-4) or 4-6-5 with one consistent separator, or an unbroken run
CREDIT_CARD_PATTERN = re.compile(
    r"\b(?:\d{4}([ -]?)\d{4}\1\d{4}\1\d{1,4}|\d{4}([ -])\d{6}\2\d{5}|\d{13,16})\b"
)

PLACEHOLDERS = {
    "email": "[EMAIL_REDACTED]",
    "phone": "[PHONE_REDACTED]",
    "ssn": "[SSN_REDACTED]",
    "credit_card": "[CREDIT_CARD_REDACTED]",
}


def luhn_valid(number: str) -> bool:
    """Check a digit string with the Luhn checksum."""
    digits = [int(ch) for ch in number if ch.isdigit()]
    total = 0
    for index, digit in enumerate(reversed(digits)):
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return bool(digits) and total % 10 == 0


@dataclass(frozen=True)
class Detector:
    """
    A PII pattern class.

    Attributes:
        name: Pattern class name used in rule configs.
        pattern: Compiled expression.
        placeholder: Replacement token.
        accept: Optional extra check on a candidate match.
    """

    name: str
    pattern: re.Pattern[str]
    placeholder: str
    accept: Callable[[str], bool] | None = field(default=None, compare=False)

    def redact(self, text: str) -> tuple[str, int]:
        """
        Replace every accepted match with the placeholder.

        Replacement is repeated until nothing matches, so a match that only
        forms once its neighbour was replaced is caught as well.

        Returns:
            Tuple of (redacted text, number of replacements).
        """
        total = 0
        while True:
            count = 0

            def substitute(match: re.Match[str]) -> str:
                nonlocal count
                if self.accept is not None and not self.accept(match.group(0)):
                    return match.group(0)
                count += 1
                return self.placeholder

            text = self.pattern.sub(substitute, text)
            total += count
            if count == 0:
                return text, total


DETECTORS: dict[str, Detector] = {
    "email": Detector("email", EMAIL_PATTERN, PLACEHOLDERS["email"]),
    "credit_card": Detector(
        "credit_card", CREDIT_CARD_PATTERN, PLACEHOLDERS["credit_card"], accept=luhn_valid
    ),
    "ssn": Detector("ssn", SSN_PATTERN, PLACEHOLDERS["ssn"]),
    "phone": Detector("phone", PHONE_PATTERN, PLACEHOLDERS["phone"]),
}

DETECTION_ORDER = ("email", "credit_card", "ssn", "phone")


def detect_pii(text: str, classes: tuple[str, ...] | None = None) -> dict[str, int]:
    """
    Count PII matches per class without changing the text.

    Args:
        text: Text to scan.
        classes: Pattern classes to look for. All classes when None.

    Returns:
        Mapping of class name to match count, for classes that matched.
    """
    _, counts = redact_pii(text, classes)
    return counts


def redact_pii(
    text: str, classes: tuple[str, ...] | None = None
) -> tuple[str, dict[str, int]]:
    """
    Redact PII from text.

    Args:
        text: Text to redact.
        classes: Pattern classes to redact. All classes when None.

    Returns:
        Tuple of (redacted text, counts per matched class).
    """
    wanted = set(DETECTION_ORDER if classes is None else classes)
    counts: dict[str, int] = {}
    for name in DETECTION_ORDER:
        if name not in wanted:
            continue
        text, count = DETECTORS[name].redact(text)
        if count:
            counts[name] = count
    return text, counts

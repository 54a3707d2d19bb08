"""
Chat message model.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentsafe.models.base import generate_uuid, model_to_dict, now_ms


class Role(Enum):
    """Author of a chat message."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class ChatMessage:
    """
    One message of a chat turn.

    Immutable once the audit entry that references it is written. For user
    messages ``content`` is the text after redaction, never the original.

    Attributes:
        id: Unique message identifier.
        role: Who authored the message.
        content: Message text.
        timestamp: Creation time in integer milliseconds since the epoch.
        provider: Provider that produced a model message.
        tokens: Token count reported for a model message.
        signature: Audit signature over the content.
        flagged: Set on system messages that report a failed turn.
        redacted: Whether PII was redacted from the content.
    """

    role: Role
    content: str
    id: str = field(default_factory=generate_uuid)
    timestamp: int = field(default_factory=now_ms)
    provider: str | None = None
    tokens: int | None = None
    signature: str | None = None
    flagged: bool = False
    redacted: bool = False

    def to_dict(self, exclude_none: bool = True) -> dict[str, Any]:
        """Convert the message to a dictionary."""
        return model_to_dict(self, exclude_none)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        """Create a message from a dictionary, as sent in chat history."""
        return cls(
            role=Role(data.get("role", "user")),
            content=str(data.get("content", "")),
            id=str(data.get("id") or generate_uuid()),
            timestamp=int(data.get("timestamp") or now_ms()),
            provider=data.get("provider"),
            tokens=data.get("tokens"),
            signature=data.get("signature"),
            flagged=bool(data.get("flagged", False)),
            redacted=bool(data.get("redacted", False)),
        )

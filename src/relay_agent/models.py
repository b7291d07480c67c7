"""
Conversation data model for relay-agent.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Message roles for conversation."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single conversation message. Immutable once appended."""

    role: MessageRole
    content: str

    def to_record(self) -> dict[str, str]:
        """Convert to the persisted ``{role, content}`` record."""
        record = asdict(self)
        record["role"] = self.role.value
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Message":
        """Build a message from a persisted record.

        Raises:
            ValueError: If the record has an unknown role or non-string content.
        """
        content = record.get("content")
        if not isinstance(content, str):
            raise ValueError("message content must be a string")
        return cls(role=MessageRole(record.get("role")), content=content)

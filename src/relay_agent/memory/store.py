"""
Conversation store - bounded per-identity message history.

Owns the history of every conversation, caps each one at a fixed number of
messages (oldest dropped first), compacts long conversations into a summary
plus a verbatim tail, and mirrors every change to snapshot storage.
"""

import structlog

from ..models import Message, MessageRole
from .compaction import DEFAULT_SUMMARY_CHARS_PER_MESSAGE, compact_messages, estimate_size
from .storage import InMemoryStorage, Snapshot, SnapshotStorage

logger = structlog.get_logger()

DEFAULT_MAX_MESSAGES = 30
DEFAULT_KEEP_RECENT = 10
DEFAULT_COMPACT_THRESHOLD = 60_000


class ConversationStore:
    """Per-identity conversation history with FIFO cap and compaction.

    Persistence failures are logged and never raised: the in-memory state
    stays authoritative for the running process.
    """

    def __init__(
        self,
        storage: SnapshotStorage | None = None,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        keep_recent: int = DEFAULT_KEEP_RECENT,
        compact_threshold: int = DEFAULT_COMPACT_THRESHOLD,
        summary_chars_per_message: int = DEFAULT_SUMMARY_CHARS_PER_MESSAGE,
    ):
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        if not 0 <= keep_recent < max_messages:
            raise ValueError("keep_recent must be between 0 and max_messages - 1")

        self.storage = storage or InMemoryStorage()
        self.max_messages = max_messages
        self.keep_recent = keep_recent
        self.compact_threshold = compact_threshold
        self.summary_chars_per_message = summary_chars_per_message
        self._conversations: dict[str, list[Message]] = self._load()

    def _load(self) -> dict[str, list[Message]]:
        try:
            snapshot = self.storage.load()
        except Exception as e:
            logger.error("Failed to load conversations, starting empty", error=str(e))
            return {}

        conversations: dict[str, list[Message]] = {}
        skipped = 0
        for identity, records in snapshot.items():
            if not isinstance(records, list):
                skipped += 1
                continue
            messages = []
            for record in records:
                try:
                    messages.append(Message.from_record(record))
                except (ValueError, AttributeError):
                    skipped += 1
            if messages:
                conversations[str(identity)] = messages[-self.max_messages:]

        logger.info(
            "Conversations loaded",
            conversations=len(conversations),
            skipped_records=skipped,
        )
        return conversations

    def _snapshot(self) -> Snapshot:
        return {
            identity: [m.to_record() for m in messages]
            for identity, messages in self._conversations.items()
        }

    def _persist(self) -> None:
        try:
            self.storage.save(self._snapshot())
        except Exception as e:
            logger.error("Failed to save conversations", error=str(e))

    def append(self, identity: str, role: MessageRole | str, content: str) -> None:
        """Add a message, dropping the oldest ones beyond the cap."""
        history = self._conversations.setdefault(identity, [])
        history.append(Message(role=MessageRole(role), content=content))

        overflow = len(history) - self.max_messages
        if overflow > 0:
            del history[:overflow]

        self._persist()

    def history(self, identity: str) -> list[Message]:
        """Get a copy of the conversation history (empty if unknown)."""
        return list(self._conversations.get(identity, []))

    def estimated_size(self, identity: str) -> int:
        """Total characters retained for a conversation."""
        return estimate_size(self._conversations.get(identity, []))

    def needs_compaction(self, identity: str) -> bool:
        return self.estimated_size(identity) > self.compact_threshold

    def compact(self, identity: str) -> bool:
        """Replace older messages with a summary, keeping the recent tail.

        Returns False (and changes nothing) when the history is no longer
        than the tail.
        """
        outcome = compact_messages(
            self._conversations.get(identity, []),
            self.keep_recent,
            self.summary_chars_per_message,
        )
        if outcome is None:
            return False

        compacted, result = outcome
        self._conversations[identity] = compacted
        self._persist()

        logger.info(
            "Conversation compacted",
            conversation=identity,
            original=result.original_message_count,
            compacted=result.compacted_message_count,
            chars_saved=result.chars_saved,
        )
        return True

    def clear(self, identity: str) -> None:
        """Drop one conversation."""
        if self._conversations.pop(identity, None) is not None:
            logger.info("Conversation cleared", conversation=identity)
        self._persist()

    def clear_all(self) -> None:
        """Drop every conversation."""
        self._conversations.clear()
        logger.info("All conversations cleared")
        self._persist()

    def identities(self) -> list[str]:
        """List known conversation identities."""
        return list(self._conversations.keys())

    def message_count(self) -> int:
        """Total messages retained across all conversations."""
        return sum(len(messages) for messages in self._conversations.values())

"""Conversation memory for relay-agent."""

from .compaction import SUMMARY_MARKER, build_summary, compact_messages, estimate_size
from .storage import InMemoryStorage, JsonFileStorage, SnapshotStorage
from .store import ConversationStore

__all__ = [
    "ConversationStore",
    "SnapshotStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SUMMARY_MARKER",
    "build_summary",
    "compact_messages",
    "estimate_size",
]

"""
Conversation compaction - lossy local summarization.

When a conversation grows too large, older messages are replaced by one
synthetic user message that lists them line by line. No model call is
involved, so compaction always succeeds and costs nothing, at the price of
fidelity: each replaced message keeps only its first few hundred characters.
"""

from dataclasses import dataclass

from ..models import Message, MessageRole

SUMMARY_MARKER = "[Summary of earlier conversation]"
DEFAULT_SUMMARY_CHARS_PER_MESSAGE = 200

ROLE_LABELS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
}


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    original_message_count: int
    compacted_message_count: int
    summarized_message_count: int
    chars_saved: int


def estimate_size(messages: list[Message]) -> int:
    """Sum of content lengths. A heuristic trigger, not a token count."""
    return sum(len(m.content) for m in messages)


def _clip(content: str, limit: int) -> str:
    flat = " ".join(content.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "..."


def build_summary(
    messages: list[Message],
    chars_per_message: int = DEFAULT_SUMMARY_CHARS_PER_MESSAGE,
) -> Message:
    """Render messages into a single user-role summary message."""
    lines = [SUMMARY_MARKER]
    for msg in messages:
        lines.append(f"{ROLE_LABELS[msg.role]}: {_clip(msg.content, chars_per_message)}")
    return Message(role=MessageRole.USER, content="\n".join(lines))


def compact_messages(
    messages: list[Message],
    keep_recent: int,
    chars_per_message: int = DEFAULT_SUMMARY_CHARS_PER_MESSAGE,
) -> tuple[list[Message], CompactionResult] | None:
    """Replace all but the last ``keep_recent`` messages with a summary.

    Returns None when there is nothing to compact.
    """
    if len(messages) <= keep_recent:
        return None

    split = len(messages) - keep_recent
    older, recent = messages[:split], messages[split:]

    compacted = [build_summary(older, chars_per_message)] + recent

    result = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(compacted),
        summarized_message_count=len(older),
        chars_saved=estimate_size(messages) - estimate_size(compacted),
    )
    return compacted, result

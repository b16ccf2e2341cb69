"""Render a conversation snapshot into tagged text segments for the chat view."""

from typing import Iterable, List, Tuple

from chat_core.domain.models import Message, Role

PENDING_PLACEHOLDER = "..."

_LABELS = {
    Role.USER: "You",
    Role.ASSISTANT: "Assistant",
}


def render_transcript(messages: Iterable[Message]) -> List[Tuple[str, str]]:
    """Return (text, tag) pairs; tags match the text widget's tag names."""

    segments: List[Tuple[str, str]] = []
    for msg in messages:
        tag = msg.role.value
        segments.append((f"{_LABELS[msg.role]}\n", f"{tag}_label"))
        segments.append((f"{msg.content or PENDING_PLACEHOLDER}\n\n", tag))
    return segments

"""Pure transforms over the client-supplied message list."""

from __future__ import annotations

from collections.abc import Sequence

from core.exceptions import InvalidRequestError
from schemas.chat_streaming import ConversationMessage, HistoryMessage


def require_last_user_query(messages: Sequence[ConversationMessage]) -> str:
    """Return the content of the final message, which must be user-authored."""
    if not messages:
        raise InvalidRequestError("Messages are required.")
    last = messages[-1]
    if last.role != "user":
        raise InvalidRequestError("Last message must be from user.")
    return last.content


def has_user_content(messages: Sequence[ConversationMessage]) -> bool:
    return any(m.role == "user" and m.content for m in messages)


def build_history(messages: Sequence[ConversationMessage]) -> list[HistoryMessage]:
    """Prior turns for the generator.

    Drops the final message (it becomes the prompt), relabels ``assistant``
    as ``model``, discards empty turns and trims everything before the first
    user turn. Returns an empty list when no user turn remains.
    """
    history = [
        HistoryMessage(
            role="model" if m.role in ("assistant", "model") else m.role,
            content=m.content,
        )
        for m in messages[:-1]
        if m.content
    ]
    for index, item in enumerate(history):
        if item.role == "user":
            return history[index:]
    return []


def build_transcript(messages: Sequence[ConversationMessage]) -> str:
    """Render ``role: content`` lines, printing model turns as ``assistant``."""
    lines = []
    for m in messages:
        role = "assistant" if m.role in ("assistant", "model") else m.role
        lines.append(f"{role}: {m.content}")
    return "\n".join(lines)

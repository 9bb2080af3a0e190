"""Mode selection for a chat stream request."""

from __future__ import annotations

from typing import Literal, NamedTuple

from schemas.chat_streaming import GENERATE_CHAPTER_ACTION


CHAPTER_CONTEXT_REQUIRED = "Book and chapter context is required."


class RouteDecision(NamedTuple):
    route: Literal["chapter", "rag", "error"]
    error: str | None = None


def resolve(action: str | None, has_chapter_context: bool) -> RouteDecision:
    """Pick the pipeline for ``action``. Pure and deterministic."""
    if action == GENERATE_CHAPTER_ACTION:
        if not has_chapter_context:
            return RouteDecision("error", CHAPTER_CONTEXT_REQUIRED)
        return RouteDecision("chapter")
    return RouteDecision("rag")

"""Retrieval-augmented chat answers streamed chunk by chunk."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import aclosing
from typing import Any

from core.config import get_settings
from core.streaming import StreamSession
from schemas.chat_streaming import (
    DENY_CHAPTER_ACTION,
    GENERATE_CHAPTER_ACTION,
    ActionDecision,
    ChatAction,
    ConversationMessage,
    DonePayload,
)
from services.ai.interfaces import GenerationStream, TextGenerator
from services.ai.prompts import (
    ANSWER_INSTRUCTIONS,
    SURPRISE_INSTRUCTIONS,
    SURPRISE_REQUEST,
    build_action_classifier_prompt,
    build_answer_prompt,
)
from services.history import build_history, require_last_user_query
from services.rerank import RerankResult, RetrievalRerankEngine


logger = logging.getLogger(__name__)

DEFAULT_ACTION_PROMPT = "With this context, would you like to generate this chapter?"
DEFAULT_ACTIONS = (
    ChatAction(id=GENERATE_CHAPTER_ACTION, label="Allow"),
    ChatAction(id=DENY_CHAPTER_ACTION, label="Deny"),
)


def sanitize_actions(raw: Any) -> list[ChatAction]:
    """Keep only ``{id, label}`` pairs where both are non-blank strings."""
    if not isinstance(raw, list):
        return []
    actions: list[ChatAction] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        action_id = str(item.get("id") or "").strip()
        label = str(item.get("label") or "").strip()
        if action_id and label:
            actions.append(ChatAction(id=action_id, label=label))
    return actions


async def relay_chunks(session: StreamSession, generation: GenerationStream) -> str | None:
    """Forward every chunk as a ``chunk`` event; None if the client left."""
    is_closed = session.detect_close()
    parts: list[str] = []
    async with aclosing(generation.chunks()) as chunks:
        async for chunk in chunks:
            if is_closed():
                break
            if chunk:
                parts.append(chunk)
                session.send("chunk", {"text": chunk})
    if is_closed():
        return None
    await generation.final_text()
    return "".join(parts)


class RagAnswerService:
    def __init__(
        self,
        generator: TextGenerator,
        classifier: TextGenerator,
        rerank_engine: RetrievalRerankEngine,
    ) -> None:
        self._generator = generator
        self._classifier = classifier
        self._rerank = rerank_engine

    async def stream(
        self,
        session: StreamSession,
        messages: Sequence[ConversationMessage],
        user_id: str,
        *,
        use_retrieval: bool,
        has_chapter_context: bool,
    ) -> DonePayload | None:
        """Answer the last user message; None when the client disconnected."""
        query = require_last_user_query(messages)
        history = build_history(messages)

        context = RerankResult()
        if use_retrieval:
            context = await self._rerank.retrieve(
                query, user_id, session.detect_close()
            )
            if session.generation.cancelled:
                return None

        generation = self._generator.stream(
            build_answer_prompt(query, context.context_text),
            history,
            instructions=ANSWER_INSTRUCTIONS,
        )
        text = await relay_chunks(session, generation)
        if text is None:
            return None

        action_prompt, actions = await self._suggest_action(
            query, text, has_chapter_context
        )
        return DonePayload(
            text=text,
            sources=context.sources,
            action_prompt=action_prompt,
            actions=actions,
        )

    async def stream_surprise(
        self, session: StreamSession, messages: Sequence[ConversationMessage]
    ) -> DonePayload | None:
        """Stream one creative idea; no retrieval, no follow-up actions."""
        generation = self._generator.stream(
            SURPRISE_REQUEST,
            build_history(messages),
            instructions=SURPRISE_INSTRUCTIONS,
        )
        text = await relay_chunks(session, generation)
        if text is None:
            return None
        return DonePayload(text=text)

    async def _suggest_action(
        self, query: str, answer: str, has_chapter_context: bool
    ) -> tuple[str, list[ChatAction]]:
        limit = get_settings().CLASSIFIER_ANSWER_CHARS
        try:
            decision = await self._classifier.generate_structured(
                build_action_classifier_prompt(query, answer[:limit], has_chapter_context),
                ActionDecision,
            )
            if not isinstance(decision, ActionDecision):
                raise TypeError(f"Unexpected classifier output: {type(decision).__name__}")
            if not (decision.show_action and has_chapter_context):
                return "", []
            actions = sanitize_actions(decision.actions) or list(DEFAULT_ACTIONS)
            return decision.action_prompt or DEFAULT_ACTION_PROMPT, actions
        except Exception:
            logger.warning("Action classifier failed; no action offered", exc_info=True)
            return "", []

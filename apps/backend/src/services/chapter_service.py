"""Multi-page chapter drafting: outline, then one page at a time.

Pages are drafted strictly in sequence. Page N+1 never starts before page
N has been persisted or has failed, which keeps page numbering, embedding
requests and quota reservations in narrative order.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from core.exceptions import (
    AuthorizationError,
    DomainError,
    InvalidRequestError,
    NotFoundError,
    UpstreamGenerationError,
)
from core.observability import get_tracer
from core.streaming import StreamSession
from schemas.chat_streaming import (
    ChapterOutline,
    ConversationMessage,
    DonePayload,
    OutlinePage,
)
from services.ai.interfaces import DocumentStore, PagePersister, TextGenerator
from services.ai.prompts import (
    PAGE_DRAFT_INSTRUCTIONS,
    build_outline_prompt,
    build_page_prompt,
)
from services.history import (
    build_transcript,
    has_user_content,
    require_last_user_query,
)


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

FALLBACK_PAGE_TITLE = "Chapter Draft"
FALLBACK_PAGE_SUMMARY = "Draft the chapter based on the conversation."
GENERIC_PAGE_ERROR = "Failed to generate chapter page."


@dataclass(frozen=True)
class ChapterContext:
    book_title: str
    chapter_title: str
    chapter_description: str


def _page_error_message(exc: Exception) -> str:
    # Provider errors carry raw upstream text; domain errors are user-facing
    if isinstance(exc, DomainError) and not isinstance(exc, UpstreamGenerationError):
        return exc.message
    return GENERIC_PAGE_ERROR


def fallback_outline(chapter_title: str | None) -> list[OutlinePage]:
    return [
        OutlinePage(
            title=chapter_title or FALLBACK_PAGE_TITLE,
            summary=FALLBACK_PAGE_SUMMARY,
            key_points=[],
        )
    ]


def normalize_outline(
    pages: Sequence[Any] | None, chapter_title: str | None
) -> list[OutlinePage]:
    """Trim every field and drop untitled pages.

    An empty or missing plan, or one where no page has a title, becomes the
    single fallback page named after the chapter.
    """
    normalized: list[OutlinePage] = []
    for page in pages or ():
        if isinstance(page, OutlinePage):
            raw = page.model_dump(by_alias=True)
        elif isinstance(page, dict):
            raw = page
        else:
            continue
        title = str(raw.get("title") or "").strip()
        if not title:
            continue
        key_points = raw.get("keyPoints") or raw.get("key_points") or []
        normalized.append(
            OutlinePage(
                title=title,
                summary=str(raw.get("summary") or "").strip(),
                key_points=[str(p).strip() for p in key_points if str(p).strip()]
                if isinstance(key_points, list)
                else [],
            )
        )
    return normalized or fallback_outline(chapter_title)


class ChapterGenerationService:
    def __init__(
        self,
        documents: DocumentStore,
        planner: TextGenerator,
        writer: TextGenerator,
        persister: PagePersister,
    ) -> None:
        self._documents = documents
        self._planner = planner
        self._writer = writer
        self._persister = persister

    async def load_context(
        self, user_id: str, book_id: str, chapter_id: str
    ) -> ChapterContext:
        """Resolve titles for prompts, enforcing owner/member access."""
        book = await self._documents.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found.")
        if book.owner_id != user_id and user_id not in (book.member_ids or []):
            raise AuthorizationError("You do not have access to this book.")
        chapter = await self._documents.get_chapter(book_id, chapter_id)
        if chapter is None:
            raise NotFoundError("Chapter not found.")
        return ChapterContext(
            book_title=book.baby_name or book.title or "Untitled Book",
            chapter_title=chapter.title or "Untitled Chapter",
            chapter_description=chapter.description or "",
        )

    async def plan(self, transcript: str, context: ChapterContext) -> list[OutlinePage]:
        try:
            outline = await self._planner.generate_structured(
                build_outline_prompt(
                    transcript,
                    context.book_title,
                    context.chapter_title,
                    context.chapter_description,
                ),
                ChapterOutline,
            )
        except Exception:
            logger.warning("Outline planning failed; using fallback outline", exc_info=True)
            return fallback_outline(context.chapter_title)
        return normalize_outline(outline.pages, context.chapter_title)

    async def stream(
        self,
        session: StreamSession,
        messages: Sequence[ConversationMessage],
        user_id: str,
        book_id: str,
        chapter_id: str,
    ) -> DonePayload | None:
        """Draft and persist the chapter's pages; None when the client left."""
        require_last_user_query(messages)
        if not has_user_content(messages):
            raise InvalidRequestError("At least one user message is required.")
        is_closed = session.detect_close()

        transcript = build_transcript(messages)
        context = await self.load_context(user_id, book_id, chapter_id)
        pages = await self.plan(transcript, context)
        if is_closed():
            return None

        total = len(pages)
        session.send(
            "outline", {"pages": [p.to_payload() for p in pages], "totalPages": total}
        )

        texts: list[str] = []
        created_page_ids: list[str] = []
        page_error = ""

        for index, page in enumerate(pages):
            if is_closed():
                return None
            session.send(
                "page_start", {"index": index, "totalPages": total, "title": page.title}
            )

            with tracer.start_as_current_span("chapter.page") as span:
                span.set_attribute("chapter.page_index", index)
                try:
                    body = await self._draft_page(session, index, page, transcript, context)
                    if body is None:
                        return None
                    created = await self._persister.create(
                        user_id, book_id, chapter_id, body
                    )
                except Exception as exc:
                    page_error = _page_error_message(exc)
                    logger.warning("Chapter page %d failed: %r", index, exc)
                    session.send(
                        "page_error",
                        {"index": index, "title": page.title, "message": page_error},
                    )
                    break

            texts.append(body)
            created_page_ids.append(created.id)
            session.send(
                "page_done", {"index": index, "title": page.title, "pageId": created.id}
            )

        if is_closed():
            return None
        return DonePayload(
            text="".join(texts),
            created_page_ids=created_page_ids,
            page_error=page_error,
        )

    async def _draft_page(
        self,
        session: StreamSession,
        index: int,
        page: OutlinePage,
        transcript: str,
        context: ChapterContext,
    ) -> str | None:
        is_closed = session.detect_close()
        generation = self._writer.stream(
            build_page_prompt(
                page_title=page.title,
                page_summary=page.summary,
                key_points=page.key_points,
                transcript=transcript,
                book_title=context.book_title,
                chapter_title=context.chapter_title,
                chapter_description=context.chapter_description,
            ),
            instructions=PAGE_DRAFT_INSTRUCTIONS,
        )
        parts: list[str] = []
        async with aclosing(generation.chunks()) as chunks:
            async for chunk in chunks:
                if is_closed():
                    break
                if chunk:
                    parts.append(chunk)
                    session.send("page_chunk", {"index": index, "text": chunk})
                    session.send("chunk", {"text": chunk})
        if is_closed():
            return None

        final = await generation.final_text()
        return "".join(parts) or final

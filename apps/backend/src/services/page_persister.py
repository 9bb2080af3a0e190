"""Persist drafted chapter pages.

Creating a page reserves one unit of the user's page quota before any
writes. If anything fails after the reservation, the unit is released and
the original error re-raised.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import NotFoundError, QuotaExhaustedError
from models.books import Chapter
from models.pages import Page
from schemas.chat_streaming import CreatedPage
from services.ai.interfaces import Embedder, UsageLedger
from services.ordering import next_order_after
from services.page_markup import extract_text, markdown_to_html, short_note


logger = logging.getLogger(__name__)

PAGE_LIMIT_MESSAGE = "You have reached your page limit for this plan."


def chapter_limit_message(limit: int) -> str:
    return f"You can create up to {limit} pages per chapter on your current plan."


class SqlPagePersister:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        ledger: UsageLedger,
        embedder: Embedder,
        embedding_model: str | None = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._ledger = ledger
        self._embedder = embedder
        self._embedding_model = embedding_model

    async def _count_pages(self, book_id: str, chapter_id: str) -> int:
        async with self._sessionmaker() as db:
            chapter = await db.scalar(
                select(Chapter.id).where(Chapter.id == chapter_id, Chapter.book_id == book_id)
            )
            if chapter is None:
                raise NotFoundError("Chapter not found.")
            count = await db.scalar(
                select(func.count()).select_from(Page).where(Page.chapter_id == chapter_id)
            )
            return int(count or 0)

    async def create(
        self, user_id: str, book_id: str, chapter_id: str, markdown: str
    ) -> CreatedPage:
        existing = await self._count_pages(book_id, chapter_id)

        limits = await self._ledger.limits_for(user_id)
        if limits.pages_per_chapter is not None and existing >= limits.pages_per_chapter:
            raise QuotaExhaustedError(chapter_limit_message(limits.pages_per_chapter))

        reserved = await self._ledger.reserve(
            user_id, "pages", 1, message=PAGE_LIMIT_MESSAGE
        )
        try:
            return await self._insert(user_id, book_id, chapter_id, markdown)
        except Exception:
            if reserved:
                await self._release(user_id)
            raise

    async def _release(self, user_id: str) -> None:
        try:
            await self._ledger.release(user_id, "pages", 1)
        except Exception:
            logger.exception("Failed to release reserved page quota")

    async def _embed(self, plain_text: str) -> list[float] | None:
        if not plain_text:
            return None
        try:
            return await self._embedder.embed(plain_text, "RETRIEVAL_DOCUMENT")
        except Exception as exc:
            logger.warning("Page embedding failed, storing without vector: %s", exc)
            return None

    async def _insert(
        self, user_id: str, book_id: str, chapter_id: str, markdown: str
    ) -> CreatedPage:
        note = markdown_to_html(markdown)
        plain_text = extract_text(note)
        embedding = await self._embed(plain_text)

        async with self._sessionmaker() as db, db.begin():
            result = await db.execute(
                select(Chapter)
                .where(Chapter.id == chapter_id, Chapter.book_id == book_id)
                .with_for_update()
            )
            chapter = result.scalar_one_or_none()
            if chapter is None:
                raise NotFoundError("Chapter not found.")

            last_order = await db.scalar(
                select(Page.order)
                .where(Page.chapter_id == chapter_id)
                .order_by(Page.order.desc())
                .limit(1)
            )
            order = next_order_after(last_order)

            page = Page(
                book_id=book_id,
                chapter_id=chapter_id,
                note=note,
                plain_text=plain_text,
                embedding=embedding,
                embedding_model=self._embedding_model if embedding is not None else None,
                order=order,
                created_by=user_id,
            )
            db.add(page)
            await db.flush()

            # Reassign so the JSONB column is marked dirty
            chapter.pages_summary = [
                *(chapter.pages_summary or []),
                {"pageId": page.id, "shortNote": short_note(plain_text), "order": order},
            ]
            page_id = page.id

        logger.info("Created chapter page", extra={"page_order": order})
        return CreatedPage(id=page_id, order=order)

"""Vector search over page embeddings, always scoped to one owner."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.pages import Page
from schemas.chat_streaming import RetrievedDocument, SourceRef


logger = logging.getLogger(__name__)


class PgVectorRetriever:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def query(
        self, vector: Sequence[float], owner_id: str, k: int
    ) -> list[RetrievedDocument]:
        # pgvector's native cosine_distance - fully parameterized
        distance = Page.embedding.cosine_distance(list(vector))
        stmt = (
            select(Page)
            .where(Page.created_by == owner_id, Page.embedding.is_not(None))
            .order_by(distance)
            .limit(k)
        )
        async with self._sessionmaker() as db:
            result = await db.execute(stmt)
            pages = result.scalars().all()

        logger.debug("Vector search returned %d candidate(s)", len(pages))
        return [
            RetrievedDocument(
                id=page.id,
                text=page.plain_text or page.note or "",
                source_ref=SourceRef(id=page.id, book_id=page.book_id, chapter_id=page.chapter_id),
            )
            for page in pages
        ]

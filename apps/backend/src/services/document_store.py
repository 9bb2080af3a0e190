"""Read access to books and chapters."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.books import Book, Chapter


class SqlDocumentStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get_book(self, book_id: str) -> Book | None:
        async with self._sessionmaker() as db:
            return await db.get(Book, book_id)

    async def get_chapter(self, book_id: str, chapter_id: str) -> Chapter | None:
        async with self._sessionmaker() as db:
            result = await db.execute(
                select(Chapter).where(Chapter.id == chapter_id, Chapter.book_id == book_id)
            )
            return result.scalar_one_or_none()

from __future__ import annotations

from typing import TYPE_CHECKING

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, new_id


if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from .books import Chapter

EMBEDDING_DIMENSIONS = 768


class Page(TimestampMixin, Base):
    __tablename__ = "pages"
    __table_args__ = (
        Index("ix_pages_chapter_order", "chapter_id", "order"),
        Index("ix_pages_created_by", "created_by"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    book_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    chapter_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False
    )
    # Stored HTML markup
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    plain_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSIONS), nullable=True
    )
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order: Mapped[str] = mapped_column(String(64), nullable=False)
    # Retrieval is always scoped by this column
    created_by: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    chapter: Mapped[Chapter] = relationship(back_populates="pages")

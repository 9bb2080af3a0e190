from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class User(TimestampMixin, Base):
    """Account record carrying the plan tier and usage counters.

    ``id`` is the identity provider's subject, so it is a string rather than a
    generated UUID.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("api_calls_used >= 0", name="ck_users_api_calls_nonneg"),
        CheckConstraint("pages_used >= 0", name="ck_users_pages_nonneg"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    plan_tier: Mapped[str] = mapped_column(
        String(32), nullable=False, default="free", server_default="free"
    )

    # Rolling api-call window
    api_calls_used: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    api_calls_window_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    pages_used: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

"""Per-user usage counters enforced inside row-locked transactions."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import UNLIMITED_TIER, PlanLimits, Settings, get_settings
from core.exceptions import NotFoundError, QuotaExhaustedError
from models.users import User
from services.ai.interfaces import UsageCounter


logger = logging.getLogger(__name__)

API_LIMIT_MESSAGE = "AI monthly limit reached. Please upgrade your plan."
DEFAULT_COUNTER_MESSAGE = "Limit reached."

_COUNTER_COLUMNS: dict[str, str] = {"pages": "pages_used"}


class SqlUsageLedger:
    """UsageLedger over the ``users`` table.

    Every operation runs in its own transaction holding ``SELECT ... FOR
    UPDATE`` on the user row, so concurrent requests for one user serialize.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        clock: type[datetime] = datetime,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._settings = settings or get_settings()
        self._clock = clock

    def tier_for(self, user: User) -> str:
        if user.id in self._settings.UNLIMITED_USERS or (
            user.email and user.email.lower() in self._settings.UNLIMITED_USERS
        ):
            return UNLIMITED_TIER
        return user.plan_tier or "free"

    async def _locked_user(self, db: AsyncSession, user_id: str) -> User:
        result = await db.execute(select(User).where(User.id == user_id).with_for_update())
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User profile not found.")
        return user

    async def limits_for(self, user_id: str) -> PlanLimits:
        async with self._sessionmaker() as db:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError("User profile not found.")
            return self._settings.plan_limits(self.tier_for(user))

    async def consume(self, user_id: str, amount: int = 1) -> None:
        """Count ``amount`` api calls against the rolling window."""
        now = self._clock.now(UTC)
        window = timedelta(days=self._settings.API_CALL_WINDOW_DAYS)
        async with self._sessionmaker() as db, db.begin():
            user = await self._locked_user(db, user_id)
            limits = self._settings.plan_limits(self.tier_for(user))

            window_start = user.api_calls_window_start or now
            within_window = now - window_start < window
            used = user.api_calls_used if within_window else 0

            if limits.api_calls is not None and used + amount > limits.api_calls:
                raise QuotaExhaustedError(API_LIMIT_MESSAGE)

            user.api_calls_used = used + amount
            user.api_calls_window_start = window_start if within_window else now
        logger.debug("Consumed %d api call(s) for user", amount)

    async def reserve(
        self,
        user_id: str,
        counter: UsageCounter,
        amount: int = 1,
        *,
        message: str | None = None,
    ) -> bool:
        return await self._adjust(user_id, counter, amount, message)

    async def release(self, user_id: str, counter: UsageCounter, amount: int = 1) -> None:
        await self._adjust(user_id, counter, -amount, None)

    async def _adjust(
        self, user_id: str, counter: UsageCounter, amount: int, message: str | None
    ) -> bool:
        column = _COUNTER_COLUMNS[counter]
        async with self._sessionmaker() as db, db.begin():
            user = await self._locked_user(db, user_id)
            tier = self.tier_for(user)
            if tier == UNLIMITED_TIER:
                return False

            limit = getattr(self._settings.plan_limits(tier), counter)
            current = getattr(user, column) or 0
            updated = max(0, current + amount)
            if amount > 0 and limit is not None and updated > limit:
                raise QuotaExhaustedError(message or DEFAULT_COUNTER_MESSAGE)
            setattr(user, column, updated)
        return True

"""Daily lives business operations.

Wraps the quota record store into the operations used by the API, the
gate and the reset scheduler. "Today" is computed once per call from the
injected clock in the reference time zone.

Every store call runs in its own session, bounded by
``settings.store_timeout_seconds``. Timeouts and database errors surface as
QuotaStoreError; a decrement is never retried, since a timed-out decrement
may already have committed.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lives.app.core.clock import Clock, SystemClock, next_reset_at, today_in
from lives.app.core.config import settings
from lives.app.core.logging import get_log_context, get_logger
from lives.app.db.crud import (
    bulk_reset_stale,
    decrement_if_positive,
    find_record_for_date,
    insert_record,
    list_records_for_user,
    reset_current_record,
)
from lives.app.db.models import QuotaRecord
from lives.app.exceptions import DuplicateRecordError, QuotaExhaustedError, QuotaStoreError

logger = get_logger(__name__)


@dataclass
class QuotaStatus:
    """Read model returned to status callers."""

    user_id: str
    units_remaining: int
    last_reset_date: date
    next_reset_at: datetime

    @property
    def has_units_available(self) -> bool:
        return self.units_remaining > 0

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "units_remaining": self.units_remaining,
            "has_units_available": self.has_units_available,
            "last_reset_date": self.last_reset_date.isoformat(),
            "next_reset_at": self.next_reset_at.isoformat(),
        }


class QuotaService:
    """Get-or-create, consume and reset operations over the quota store."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Optional[Clock] = None,
        max_units: Optional[int] = None,
        store_timeout: Optional[float] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._session_maker = session_maker
        self.clock = clock or SystemClock()
        self.max_units = max_units or settings.max_units
        self._store_timeout = store_timeout or settings.store_timeout_seconds
        self.tz = tz or settings.reset_tz

    def _get_session_maker(self) -> async_sessionmaker[AsyncSession]:
        if self._session_maker is None:
            from lives.app.db.async_session import get_async_session_maker
            self._session_maker = get_async_session_maker()
        return self._session_maker

    def today(self) -> date:
        return today_in(self.clock, self.tz)

    def next_reset_at(self) -> datetime:
        return next_reset_at(
            self.clock.now(), self.tz, settings.reset_hour, settings.reset_minute
        )

    async def _call(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        """Run one store operation in a fresh session under the store timeout."""
        session_maker = self._get_session_maker()

        async def run() -> Any:
            async with session_maker() as session:
                return await func(session, *args)

        try:
            return await asyncio.wait_for(run(), timeout=self._store_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Quota store timed out during {operation} after {self._store_timeout}s")
            raise QuotaStoreError(operation, "Quota store timed out") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Quota store failure during {operation}: {type(e).__name__}: {e}")
            raise QuotaStoreError(operation) from e

    async def get_or_create_today(self, user_id: str) -> QuotaRecord:
        """Return today's record for the user, creating it with full units.

        Never resets an existing record; only the scheduler refills units.
        A concurrent first touch that wins the insert is handled by
        re-fetching the row it created.
        """
        today = self.today()
        record = await self._call("find_record_for_date", find_record_for_date, user_id, today)
        if record is not None:
            return record

        try:
            record = await self._call(
                "insert_record", insert_record, user_id, self.max_units, today
            )
            logger.info(
                f"Created lives record for {user_id} on {today}",
                extra=get_log_context(user_id=user_id, units_remaining=record.units_remaining),
            )
            return record
        except DuplicateRecordError:
            logger.debug(f"Concurrent first touch for {user_id} on {today}, re-fetching")

        record = await self._call("find_record_for_date", find_record_for_date, user_id, today)
        if record is None:
            raise QuotaStoreError("get_or_create_today", "Record missing after duplicate insert")
        return record

    async def get_status(self, user_id: str) -> QuotaStatus:
        record = await self.get_or_create_today(user_id)
        return QuotaStatus(
            user_id=user_id,
            units_remaining=record.units_remaining,
            last_reset_date=record.last_reset_date,
            next_reset_at=self.next_reset_at(),
        )

    async def consume(self, user_id: str) -> QuotaRecord:
        """Take one unit from the user's current record.

        Raises:
            QuotaExhaustedError: If the user has no units left
            QuotaStoreError: On infrastructure failure (not retried)
        """
        await self.get_or_create_today(user_id)
        success, record = await self._call(
            "decrement_if_positive", decrement_if_positive, user_id
        )

        if not success:
            if record is None:
                raise QuotaStoreError("decrement_if_positive", "Record missing after creation")
            logger.warning(
                f"AUDIT: User {user_id} attempted to consume a life with none remaining",
                extra=get_log_context(user_id=user_id),
            )
            raise QuotaExhaustedError(next_reset_at=self.next_reset_at(), units_remaining=0)

        logger.info(
            f"AUDIT: Life consumed for user {user_id}. Lives remaining: {record.units_remaining}",
            extra=get_log_context(user_id=user_id, units_remaining=record.units_remaining),
        )
        return record

    async def reset_all_stale(self) -> int:
        """Refill every stale current record for today. Safe to repeat."""
        today = self.today()
        affected = await self._call(
            "bulk_reset_stale", bulk_reset_stale, today, self.max_units
        )
        logger.info(f"Bulk reset for {today}: {affected} records restored to {self.max_units}")
        return affected

    async def force_reset_user(self, user_id: str) -> QuotaRecord:
        """Operational escape hatch: refill one user's current record now.

        Not part of the normal gating flow. Creates today's record when the
        user has none.
        """
        logger.warning(
            f"AUDIT: Forced lives reset for user {user_id}",
            extra=get_log_context(user_id=user_id),
        )
        record = await self._call(
            "reset_current_record", reset_current_record, user_id, self.today(), self.max_units
        )
        if record is None:
            record = await self.get_or_create_today(user_id)
        return record

    async def get_history(self, user_id: str, limit: int = 30) -> list[QuotaRecord]:
        """Per-day records for a user, newest first."""
        return await self._call(
            "list_records_for_user", list_records_for_user, user_id, limit
        )


_quota_service: Optional[QuotaService] = None


def get_quota_service() -> QuotaService:
    """Get the global quota service instance."""
    global _quota_service
    if _quota_service is None:
        _quota_service = QuotaService()
    return _quota_service


def reset_quota_service() -> None:
    """Reset the global quota service instance."""
    global _quota_service
    _quota_service = None

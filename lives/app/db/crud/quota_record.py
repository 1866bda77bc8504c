"""Quota record CRUD operations.

All mutual exclusion lives in the database: the decrement takes a row lock
on the user's current record and guards the UPDATE with
``units_remaining > 0`` so that concurrent callers can never drive the
counter negative, even on backends without ``SELECT ... FOR UPDATE``.
"""
from __future__ import annotations

from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from lives.app.db.models import QuotaRecord
from lives.app.exceptions import DuplicateRecordError


def _current_record_query(user_id: str):
    return (
        select(QuotaRecord)
        .where(QuotaRecord.user_id == user_id)
        .order_by(QuotaRecord.last_reset_date.desc())
        .limit(1)
    )


async def find_current_record(session: AsyncSession, user_id: str) -> QuotaRecord | None:
    """Get the record with the latest last_reset_date for a user.

    Args:
        session: Database session
        user_id: The user ID

    Returns:
        The current record, or None if the user has never been touched
    """
    result = await session.execute(_current_record_query(user_id))
    return result.scalars().first()


async def find_record_for_date(
    session: AsyncSession, user_id: str, record_date: date
) -> QuotaRecord | None:
    """Exact-match lookup of a user's record for one calendar day."""
    result = await session.execute(
        select(QuotaRecord).where(
            QuotaRecord.user_id == user_id,
            QuotaRecord.last_reset_date == record_date,
        )
    )
    return result.scalar_one_or_none()


async def insert_record(
    session: AsyncSession,
    user_id: str,
    initial_units: int,
    record_date: date,
) -> QuotaRecord:
    """Create a new record for (user_id, record_date).

    Args:
        session: Database session
        user_id: The user ID
        initial_units: Units granted to the new record
        record_date: Calendar day the record belongs to

    Returns:
        The created QuotaRecord

    Raises:
        DuplicateRecordError: If a record for (user_id, record_date) exists.
            The session is rolled back and can be reused for a re-fetch.
    """
    record = QuotaRecord(
        user_id=user_id,
        units_remaining=initial_units,
        last_reset_date=record_date,
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicateRecordError(user_id, record_date) from e
    await session.refresh(record)
    return record


async def decrement_if_positive(
    session: AsyncSession, user_id: str
) -> tuple[bool, QuotaRecord | None]:
    """Atomically take one unit from the user's current record.

    Locks the current row, re-reads it, and decrements with a conditional
    UPDATE. Two concurrent callers on a record holding one unit get exactly
    one success between them.

    Args:
        session: Database session
        user_id: The user ID

    Returns:
        Tuple of (success, record)
        - success: True if a unit was taken
        - record: The current record after the operation, or None if the
          user has no record at all
    """
    result = await session.execute(_current_record_query(user_id).with_for_update())
    current = result.scalars().first()

    if current is None:
        await session.rollback()
        return False, None

    if current.units_remaining <= 0:
        # Nothing written; ending the transaction releases the row lock
        await session.commit()
        return False, current

    result = await session.execute(
        update(QuotaRecord)
        .where(
            QuotaRecord.id == current.id,
            QuotaRecord.units_remaining > 0,
        )
        .values(
            units_remaining=QuotaRecord.units_remaining - 1,
            updated_at=func.now(),
        )
        .returning(QuotaRecord.units_remaining)
        .execution_options(synchronize_session=False)
    )
    row = result.fetchone()

    if row is None:
        # Lost the race on a backend without row locks; nothing was written
        await session.commit()
        await session.refresh(current)
        return False, current

    await session.commit()
    await session.refresh(current)
    return True, current


async def bulk_reset_stale(session: AsyncSession, today: date, max_units: int) -> int:
    """Restore every stale current record to full units for today.

    A single set-based UPDATE. Only each user's current record is touched,
    so older history rows never collide with the (user_id, date) unique
    constraint. Re-running it for the same day affects zero rows.

    Args:
        session: Database session
        today: The reset day in the reference time zone
        max_units: Units to restore

    Returns:
        Number of records reset
    """
    newer = aliased(QuotaRecord)
    latest_date = (
        select(func.max(newer.last_reset_date))
        .where(newer.user_id == QuotaRecord.user_id)
        .correlate(QuotaRecord)
        .scalar_subquery()
    )
    result = await session.execute(
        update(QuotaRecord)
        .where(
            QuotaRecord.last_reset_date < today,
            QuotaRecord.last_reset_date == latest_date,
        )
        .values(
            units_remaining=max_units,
            last_reset_date=today,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0


async def reset_current_record(
    session: AsyncSession, user_id: str, today: date, max_units: int
) -> QuotaRecord | None:
    """Unconditionally refill the user's current record and date it today.

    Returns:
        The updated record, or None if the user has no record
    """
    result = await session.execute(_current_record_query(user_id).with_for_update())
    current = result.scalars().first()
    if current is None:
        await session.rollback()
        return None

    current.units_remaining = max_units
    current.last_reset_date = today
    await session.commit()
    await session.refresh(current)
    return current


async def list_records_for_user(
    session: AsyncSession, user_id: str, limit: int = 30
) -> list[QuotaRecord]:
    """Get a user's per-day records, newest first."""
    result = await session.execute(
        select(QuotaRecord)
        .where(QuotaRecord.user_id == user_id)
        .order_by(QuotaRecord.last_reset_date.desc())
        .limit(limit)
    )
    return list(result.scalars().all())

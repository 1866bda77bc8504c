"""Tests for QuotaService business operations."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from lives.app.db.crud import insert_record
from lives.app.db.models import QuotaRecord
from lives.app.exceptions import QuotaExhaustedError, QuotaStoreError
from lives.app.services.quota import QuotaService

TODAY = date(2026, 3, 10)


async def _count_rows(session_maker, user_id: str) -> int:
    async with session_maker() as session:
        result = await session.execute(
            select(func.count()).select_from(QuotaRecord).where(QuotaRecord.user_id == user_id)
        )
        return result.scalar_one()


class TestGetOrCreateToday:
    @pytest.mark.asyncio
    async def test_creates_full_record_on_first_touch(self, quota_service):
        record = await quota_service.get_or_create_today("u1")

        assert record.units_remaining == 5
        assert record.last_reset_date == TODAY

    @pytest.mark.asyncio
    async def test_returns_existing_record_unchanged(self, quota_service):
        await quota_service.consume("u1")
        record = await quota_service.get_or_create_today("u1")

        assert record.units_remaining == 4

    @pytest.mark.asyncio
    async def test_concurrent_first_touch_creates_one_record(self, quota_service, session_maker):
        records = await asyncio.gather(
            *(quota_service.get_or_create_today("new-user") for _ in range(5))
        )

        assert len({r.id for r in records}) == 1
        assert all(r.units_remaining == 5 for r in records)
        assert await _count_rows(session_maker, "new-user") == 1

    @pytest.mark.asyncio
    async def test_today_uses_reference_time_zone(self, session_maker):
        # 23:30 in UTC-5 is already tomorrow in UTC
        from lives.app.core.clock import FixedClock

        clock = FixedClock(datetime(2026, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-5))))
        service = QuotaService(session_maker=session_maker, clock=clock, tz=timezone.utc)

        assert service.today() == date(2026, 3, 11)


class TestConsume:
    @pytest.mark.asyncio
    async def test_five_consumes_then_exhausted(self, quota_service):
        remaining = [(await quota_service.consume("u1")).units_remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

        with pytest.raises(QuotaExhaustedError) as exc_info:
            await quota_service.consume("u1")

        error = exc_info.value
        assert error.status_code == 403
        assert error.units_remaining == 0
        assert error.next_reset_at == datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc)
        assert error.to_response()["code"] == "QUOTA_EXHAUSTED"

    @pytest.mark.asyncio
    async def test_concurrent_consumes_never_go_negative(self, quota_service):
        results = await asyncio.gather(
            *(quota_service.consume("u1") for _ in range(8)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, QuotaRecord)]
        denied = [r for r in results if isinstance(r, QuotaExhaustedError)]
        assert len(successes) == 5
        assert len(denied) == 3

        status = await quota_service.get_status("u1")
        assert status.units_remaining == 0

    @pytest.mark.asyncio
    async def test_one_unit_two_callers_one_winner(self, quota_service, session_maker):
        async with session_maker() as session:
            await insert_record(session, "u1", 1, TODAY)

        results = await asyncio.gather(
            quota_service.consume("u1"),
            quota_service.consume("u1"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, QuotaRecord) for r in results) == 1
        assert sum(isinstance(r, QuotaExhaustedError) for r in results) == 1


class TestResetAllStale:
    @pytest.mark.asyncio
    async def test_daily_scenario(self, quota_service, clock):
        record = await quota_service.get_or_create_today("U1")
        assert (record.units_remaining, record.last_reset_date) == (5, TODAY)

        for _ in range(5):
            record = await quota_service.consume("U1")
        assert record.units_remaining == 0
        with pytest.raises(QuotaExhaustedError):
            await quota_service.consume("U1")

        # Same day: nothing to reset
        assert await quota_service.reset_all_stale() == 0
        status = await quota_service.get_status("U1")
        assert (status.units_remaining, status.last_reset_date) == (0, TODAY)

        clock.advance(days=1)
        assert await quota_service.reset_all_stale() == 1
        status = await quota_service.get_status("U1")
        assert status.units_remaining == 5
        assert status.last_reset_date == TODAY + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_idempotent_within_a_day(self, quota_service, session_maker, clock):
        async with session_maker() as session:
            for user in ("a", "b", "c"):
                await insert_record(session, user, 0, TODAY - timedelta(days=1))

        assert await quota_service.reset_all_stale() == 3
        assert await quota_service.reset_all_stale() == 0

    @pytest.mark.asyncio
    async def test_todays_record_untouched(self, quota_service, session_maker):
        async with session_maker() as session:
            await insert_record(session, "yesterday", 0, TODAY - timedelta(days=1))
            await insert_record(session, "today", 2, TODAY)

        await quota_service.reset_all_stale()

        assert (await quota_service.get_status("yesterday")).units_remaining == 5
        assert (await quota_service.get_status("today")).units_remaining == 2


class TestForceResetUser:
    @pytest.mark.asyncio
    async def test_refills_exhausted_user(self, quota_service):
        for _ in range(5):
            await quota_service.consume("u1")

        record = await quota_service.force_reset_user("u1")

        assert record.units_remaining == 5
        assert record.last_reset_date == TODAY

    @pytest.mark.asyncio
    async def test_creates_record_for_unknown_user(self, quota_service, session_maker):
        record = await quota_service.force_reset_user("brand-new")

        assert record.units_remaining == 5
        assert await _count_rows(session_maker, "brand-new") == 1


@pytest.mark.asyncio
async def test_get_history(quota_service, clock):
    await quota_service.consume("u1")
    clock.advance(days=1)
    await quota_service.get_or_create_today("u1")

    history = await quota_service.get_history("u1")

    assert [r.last_reset_date for r in history] == [TODAY + timedelta(days=1), TODAY]
    assert [r.units_remaining for r in history] == [5, 4]


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_database_error_becomes_quota_store_error(self, clock):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        session_maker = MagicMock(return_value=session_cm)

        service = QuotaService(session_maker=session_maker, clock=clock, tz=timezone.utc)

        with pytest.raises(QuotaStoreError) as exc_info:
            await service.get_or_create_today("u1")
        assert exc_info.value.operation == "find_record_for_date"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_becomes_quota_store_error(self, clock):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        session = MagicMock()
        session.execute = hang
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        session_maker = MagicMock(return_value=session_cm)

        service = QuotaService(
            session_maker=session_maker, clock=clock, store_timeout=0.05, tz=timezone.utc
        )

        with pytest.raises(QuotaStoreError, match="timed out"):
            await service.consume("u1")

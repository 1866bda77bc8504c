"""Tests for QuotaGate fail-open / fail-closed behaviour."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from lives.app.db.crud import insert_record
from lives.app.exceptions import QuotaExhaustedError, QuotaStoreError
from lives.app.services.quota_gate import ActionOutcome, QuotaGate

TODAY = date(2026, 3, 10)


def _action(outcome: ActionOutcome) -> AsyncMock:
    return AsyncMock(return_value=outcome)


class TestCheck:
    @pytest.mark.asyncio
    async def test_allows_user_with_units(self, quota_service):
        gate = QuotaGate(quota_service)

        status = await gate.check("u1")

        assert status.units_remaining == 5

    @pytest.mark.asyncio
    async def test_rejects_exhausted_user(self, quota_service, session_maker):
        async with session_maker() as session:
            await insert_record(session, "u1", 0, TODAY)
        gate = QuotaGate(quota_service)

        with pytest.raises(QuotaExhaustedError) as exc_info:
            await gate.check("u1")
        assert exc_info.value.next_reset_at == quota_service.next_reset_at()

    @pytest.mark.asyncio
    async def test_fails_open_on_store_error(self, quota_service, monkeypatch):
        monkeypatch.setattr(
            quota_service, "get_status", AsyncMock(side_effect=QuotaStoreError("find_record_for_date"))
        )
        gate = QuotaGate(quota_service)

        assert await gate.check("u1") is None


class TestCheckAndConsumeOnFailure:
    @pytest.mark.asyncio
    async def test_failure_outcome_consumes_one_unit(self, quota_service):
        gate = QuotaGate(quota_service)

        result = await gate.check_and_consume_on_failure("u1", _action(ActionOutcome.FAILURE))

        assert result.consumed is True
        assert result.units_remaining == 4
        assert result.to_dict()["outcome"] == "incorrect"

    @pytest.mark.asyncio
    async def test_success_outcome_is_free(self, quota_service):
        gate = QuotaGate(quota_service)

        result = await gate.check_and_consume_on_failure("u1", _action(ActionOutcome.SUCCESS))

        assert result.consumed is False
        assert result.units_remaining == 5

    @pytest.mark.asyncio
    async def test_exhausted_user_action_not_invoked(self, quota_service, session_maker):
        async with session_maker() as session:
            await insert_record(session, "u1", 0, TODAY)
        gate = QuotaGate(quota_service)
        action = _action(ActionOutcome.FAILURE)

        with pytest.raises(QuotaExhaustedError):
            await gate.check_and_consume_on_failure("u1", action)

        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_last_unit_is_consumed_then_next_attempt_blocked(self, quota_service, session_maker):
        async with session_maker() as session:
            await insert_record(session, "u1", 1, TODAY)
        gate = QuotaGate(quota_service)

        result = await gate.check_and_consume_on_failure("u1", _action(ActionOutcome.FAILURE))
        assert result.units_remaining == 0
        assert result.has_units_available is False

        with pytest.raises(QuotaExhaustedError):
            await gate.check_and_consume_on_failure("u1", _action(ActionOutcome.SUCCESS))

    @pytest.mark.asyncio
    async def test_fails_open_when_store_down(self, quota_service, monkeypatch):
        monkeypatch.setattr(
            quota_service, "get_status", AsyncMock(side_effect=QuotaStoreError("find_record_for_date"))
        )
        monkeypatch.setattr(
            quota_service, "consume", AsyncMock(side_effect=QuotaStoreError("decrement_if_positive"))
        )
        gate = QuotaGate(quota_service)
        action = _action(ActionOutcome.FAILURE)

        result = await gate.check_and_consume_on_failure("u1", action)

        action.assert_awaited_once()
        assert result.consumed is False
        assert result.degraded is True
        assert result.units_remaining is None

    @pytest.mark.asyncio
    async def test_race_lost_after_action_is_reported_not_raised(self, quota_service, monkeypatch):
        monkeypatch.setattr(
            quota_service,
            "consume",
            AsyncMock(side_effect=QuotaExhaustedError(next_reset_at=quota_service.next_reset_at())),
        )
        gate = QuotaGate(quota_service)

        result = await gate.check_and_consume_on_failure("u1", _action(ActionOutcome.FAILURE))

        assert result.consumed is False
        assert result.units_remaining == 0


def test_only_failure_consumes():
    assert ActionOutcome.FAILURE.consumes_unit is True
    assert ActionOutcome.SUCCESS.consumes_unit is False
    assert ActionOutcome("incorrect") is ActionOutcome.FAILURE

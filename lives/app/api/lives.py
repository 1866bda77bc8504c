"""Learner-facing lives endpoints."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from lives.app.middleware.auth import require_user_id
from lives.app.services.quota import QuotaService, get_quota_service
from lives.app.services.quota_gate import ActionOutcome, QuotaGate, get_quota_gate

router = APIRouter(prefix="/v1/lives", tags=["lives"])


class LivesStatusResponse(BaseModel):
    user_id: str
    units_remaining: int
    has_units_available: bool
    last_reset_date: date
    next_reset_at: datetime


class ConsumeResponse(LivesStatusResponse):
    message: str


class AttemptRequest(BaseModel):
    """Outcome of a graded attempt; only incorrect answers cost a life."""

    outcome: ActionOutcome


class AttemptResponse(BaseModel):
    outcome: ActionOutcome
    consumed: bool
    units_remaining: Optional[int]
    has_units_available: Optional[bool]
    next_reset_at: datetime


class LivesHistoryEntry(BaseModel):
    """One per-day lives record."""

    last_reset_date: date
    units_remaining: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("/status", response_model=LivesStatusResponse)
async def get_lives_status(
    user_id: str = Depends(require_user_id),
    service: QuotaService = Depends(get_quota_service),
) -> dict:
    """Current lives for the caller, creating today's record on first touch."""
    status = await service.get_status(user_id)
    return status.to_dict()


@router.post("/consume", response_model=ConsumeResponse)
async def consume_life(
    user_id: str = Depends(require_user_id),
    service: QuotaService = Depends(get_quota_service),
) -> dict:
    """Take one life. Responds 403 with the next reset time when none are left."""
    record = await service.consume(user_id)
    return {
        "user_id": user_id,
        "units_remaining": record.units_remaining,
        "has_units_available": record.units_remaining > 0,
        "last_reset_date": record.last_reset_date,
        "next_reset_at": service.next_reset_at(),
        "message": "Life consumed",
    }


@router.post("/attempts", response_model=AttemptResponse)
async def record_attempt(
    body: AttemptRequest,
    user_id: str = Depends(require_user_id),
    gate: QuotaGate = Depends(get_quota_gate),
) -> dict:
    """Gate a graded attempt and charge a life when it was incorrect."""

    async def graded() -> ActionOutcome:
        return body.outcome

    result = await gate.check_and_consume_on_failure(user_id, graded)
    return result.to_dict()


@router.get("/history", response_model=List[LivesHistoryEntry])
async def get_lives_history(
    user_id: str = Depends(require_user_id),
    limit: int = Query(30, ge=1, le=365),
    service: QuotaService = Depends(get_quota_service),
) -> list:
    """The caller's per-day records, newest first."""
    return await service.get_history(user_id, limit=limit)

"""Admin endpoints for the daily lives reset."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from lives.app.core.logging import get_logger
from lives.app.services.quota import QuotaService, get_quota_service
from lives.app.services.reset_scheduler import ResetScheduler, get_reset_scheduler

router = APIRouter()
logger = get_logger(__name__)


class ForceResetResponse(BaseModel):
    user_id: str
    units_remaining: int
    ran_at: datetime


class SchedulerStatusResponse(BaseModel):
    is_running: bool
    last_successful_reset: datetime | None
    consecutive_failures: int
    next_scheduled_run: datetime
    state: str
    last_error: str | None = None


class TriggerResponse(BaseModel):
    success: bool
    affected_count: int
    message: str
    ran_at: datetime


@router.post("/lives/{user_id}/reset", response_model=ForceResetResponse)
async def force_reset_user(
    user_id: str,
    service: QuotaService = Depends(get_quota_service),
) -> dict:
    """Refill one user's lives immediately (support escape hatch)."""
    record = await service.force_reset_user(user_id)
    return {
        "user_id": user_id,
        "units_remaining": record.units_remaining,
        "ran_at": service.clock.now(),
    }


@router.get("/cron/lives-reset/status", response_model=SchedulerStatusResponse)
async def get_reset_status(
    scheduler: ResetScheduler = Depends(get_reset_scheduler),
) -> dict:
    """Health of the daily reset job."""
    return scheduler.status().to_dict()


@router.post("/cron/lives-reset/trigger", response_model=TriggerResponse)
async def trigger_reset(
    scheduler: ResetScheduler = Depends(get_reset_scheduler),
) -> dict:
    """Run the daily reset now. Responds 409 while a reset is in progress."""
    result = await scheduler.trigger_now()
    if result.already_running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    logger.info(f"Manual reset via admin API: {result.message}")
    return result.to_dict()

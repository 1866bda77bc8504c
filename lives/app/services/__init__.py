"""Service layer for the lives engine."""

from lives.app.services.alerts import AlertNotifier, ResetAlert
from lives.app.services.quota import QuotaService, QuotaStatus, get_quota_service
from lives.app.services.quota_gate import ActionOutcome, GateResult, QuotaGate, get_quota_gate
from lives.app.services.reset_scheduler import (
    CycleResult,
    ResetScheduler,
    SchedulerState,
    get_reset_scheduler,
)

__all__ = [
    "AlertNotifier",
    "ResetAlert",
    "QuotaService",
    "QuotaStatus",
    "get_quota_service",
    "ActionOutcome",
    "GateResult",
    "QuotaGate",
    "get_quota_gate",
    "CycleResult",
    "ResetScheduler",
    "SchedulerState",
    "get_reset_scheduler",
]

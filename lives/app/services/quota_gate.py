"""Request-path guard for costly actions.

Fails closed on exhaustion and fails open on quota store outages: lives
are a gameplay control, so a store failure must not block the product.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from lives.app.core.logging import get_log_context, get_logger
from lives.app.exceptions import QuotaExhaustedError, QuotaStoreError
from lives.app.services.quota import QuotaService, QuotaStatus, get_quota_service

logger = get_logger(__name__)


class ActionOutcome(str, Enum):
    """Result of a gated action. Only failures cost a unit."""

    SUCCESS = "correct"
    FAILURE = "incorrect"

    @property
    def consumes_unit(self) -> bool:
        return self is ActionOutcome.FAILURE


@dataclass
class GateResult:
    outcome: ActionOutcome
    consumed: bool
    units_remaining: Optional[int]
    next_reset_at: datetime
    degraded: bool = False  # True when a store error was absorbed

    @property
    def has_units_available(self) -> Optional[bool]:
        if self.units_remaining is None:
            return None
        return self.units_remaining > 0

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "consumed": self.consumed,
            "units_remaining": self.units_remaining,
            "has_units_available": self.has_units_available,
            "next_reset_at": self.next_reset_at.isoformat(),
        }


class QuotaGate:
    def __init__(self, quota_service: Optional[QuotaService] = None) -> None:
        self.quota_service = quota_service or get_quota_service()

    async def check(self, user_id: str) -> Optional[QuotaStatus]:
        """Pre-action availability check.

        Returns:
            The user's status, or None if the store was unavailable
            (the action is allowed)

        Raises:
            QuotaExhaustedError: If the user has no units left today
        """
        try:
            status = await self.quota_service.get_status(user_id)
        except QuotaStoreError as e:
            logger.warning(
                f"Quota check unavailable for {user_id}, allowing action: {e}",
                extra=get_log_context(user_id=user_id),
            )
            return None

        if not status.has_units_available:
            logger.info(
                f"Blocked action for {user_id}: no lives remaining",
                extra=get_log_context(user_id=user_id),
            )
            raise QuotaExhaustedError(
                next_reset_at=status.next_reset_at,
                units_remaining=status.units_remaining,
            )
        return status

    async def check_and_consume_on_failure(
        self,
        user_id: str,
        action: Callable[[], Awaitable[ActionOutcome]],
    ) -> GateResult:
        """Check, run the action, and charge a unit if it failed.

        The action is not invoked when the user is exhausted. Once the
        action has run its outcome stands: a consume that loses a race or
        hits a store error is logged and reported, never raised.

        Raises:
            QuotaExhaustedError: If the user had no units before the action
        """
        status = await self.check(user_id)
        outcome = await action()

        units_remaining = status.units_remaining if status else None
        if not outcome.consumes_unit:
            return GateResult(
                outcome=outcome,
                consumed=False,
                units_remaining=units_remaining,
                next_reset_at=self.quota_service.next_reset_at(),
                degraded=status is None,
            )

        try:
            record = await self.quota_service.consume(user_id)
        except QuotaExhaustedError as e:
            # Units ran out concurrently between check and consume
            logger.info(
                f"Lives exhausted for {user_id} while action was in flight",
                extra=get_log_context(user_id=user_id),
            )
            return GateResult(
                outcome=outcome,
                consumed=False,
                units_remaining=0,
                next_reset_at=e.next_reset_at,
            )
        except QuotaStoreError as e:
            logger.error(
                f"Failed to consume life for {user_id}: {e}",
                extra=get_log_context(user_id=user_id),
            )
            return GateResult(
                outcome=outcome,
                consumed=False,
                units_remaining=units_remaining,
                next_reset_at=self.quota_service.next_reset_at(),
                degraded=True,
            )

        return GateResult(
            outcome=outcome,
            consumed=True,
            units_remaining=record.units_remaining,
            next_reset_at=self.quota_service.next_reset_at(),
        )


_quota_gate: Optional[QuotaGate] = None


def get_quota_gate() -> QuotaGate:
    """Get the global quota gate instance."""
    global _quota_gate
    if _quota_gate is None:
        _quota_gate = QuotaGate()
    return _quota_gate


def reset_quota_gate() -> None:
    """Reset the global quota gate instance."""
    global _quota_gate
    _quota_gate = None

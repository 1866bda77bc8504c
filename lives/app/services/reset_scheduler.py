"""Daily lives reset scheduler.

Fires the bulk reset once per day at a fixed trigger time in the reference
time zone (01:00 UTC by default), with bounded in-cycle retries, a
single-flight guard shared by the scheduled and manual paths, and an alert
once consecutive cycles keep failing.

State machine::

    IDLE -> RUNNING -> {SUCCEEDED, FAILED_RETRYING, FAILED_TERMINAL} -> IDLE

The running flag is process-local. Multi-instance deployments either hold
the optional Redis leader lock or rely on the bulk reset being idempotent.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from lives.app.core.clock import Clock, next_reset_at
from lives.app.core.config import settings
from lives.app.core.logging import get_logger
from lives.app.services.alerts import AlertNotifier, ResetAlert
from lives.app.services.leader_lock import RedisLeaderLock
from lives.app.services.quota import QuotaService, get_quota_service

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYING = "failed_retrying"
    FAILED_TERMINAL = "failed_terminal"


@dataclass
class CycleResult:
    """Outcome of one reset cycle (scheduled or manual)."""

    success: bool
    affected_count: int
    message: str
    ran_at: datetime
    already_running: bool = False
    skipped: bool = False
    attempts: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "affected_count": self.affected_count,
            "message": self.message,
            "ran_at": self.ran_at.isoformat(),
        }


@dataclass
class SchedulerStatus:
    is_running: bool
    last_successful_reset: Optional[datetime]
    consecutive_failures: int
    next_scheduled_run: datetime
    state: SchedulerState
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_successful_reset": (
                self.last_successful_reset.isoformat() if self.last_successful_reset else None
            ),
            "consecutive_failures": self.consecutive_failures,
            "next_scheduled_run": self.next_scheduled_run.isoformat(),
            "state": self.state.value,
            "last_error": self.last_error,
        }


class ResetAttemptsExhausted(Exception):
    """All in-cycle attempts failed."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Reset failed after {attempts} attempts: {last_error}")


class ResetScheduler:
    """Runs QuotaService.reset_all_stale on a fixed daily trigger.

    Usage:
        scheduler = ResetScheduler(quota_service)
        await scheduler.start()
        ...
        result = await scheduler.trigger_now()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        quota_service: Optional[QuotaService] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[AlertNotifier] = None,
        leader_lock: Optional[RedisLeaderLock] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        alert_threshold: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._quota_service = quota_service or get_quota_service()
        self.clock = clock or self._quota_service.clock
        self.notifier = notifier or AlertNotifier()
        self.leader_lock = leader_lock
        self.max_attempts = max_attempts or settings.reset_max_attempts
        self.retry_delay = (
            settings.reset_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self.alert_threshold = alert_threshold or settings.reset_alert_threshold
        self._sleep = sleep

        self._state = SchedulerState.IDLE
        self._running = False
        self.last_successful_reset: Optional[datetime] = None
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> SchedulerState:
        return self._state

    def next_scheduled_run(self) -> datetime:
        return next_reset_at(
            self.clock.now(),
            self._quota_service.tz,
            settings.reset_hour,
            settings.reset_minute,
        )

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self._running,
            last_successful_reset=self.last_successful_reset,
            consecutive_failures=self.consecutive_failures,
            next_scheduled_run=self.next_scheduled_run(),
            state=self._state,
            last_error=self.last_error,
        )

    def _try_enter(self) -> bool:
        # No await between check and set: atomic on the event loop
        if self._running:
            return False
        self._running = True
        self._state = SchedulerState.RUNNING
        return True

    def _leave(self) -> None:
        self._running = False
        self._state = SchedulerState.IDLE

    async def _reset_with_retry(self) -> tuple[int, int]:
        """Run the bulk reset up to max_attempts times.

        Returns:
            Tuple of (affected_count, attempts_used)

        Raises:
            ResetAttemptsExhausted: If every attempt failed
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.info(f"Reset attempt {attempt}/{self.max_attempts}")
                affected = await self._quota_service.reset_all_stale()
                self._state = SchedulerState.SUCCEEDED
                return affected, attempt
            except Exception as e:
                last_error = e
                logger.warning(f"Reset attempt {attempt} failed: {type(e).__name__}: {e}")
                if attempt < self.max_attempts:
                    self._state = SchedulerState.FAILED_RETRYING
                    logger.info(f"Retrying in {self.retry_delay}s...")
                    await self._sleep(self.retry_delay)

        self._state = SchedulerState.FAILED_TERMINAL
        raise ResetAttemptsExhausted(self.max_attempts, last_error)

    async def run_scheduled_cycle(self) -> CycleResult:
        """Scheduled trigger entry point.

        Skips (with a warning) when a cycle is already running. Failures
        count toward the consecutive-failure counter that drives alerting.
        """
        ran_at = self.clock.now()
        if not self._try_enter():
            logger.warning("Daily lives reset job is already running, skipping...")
            return CycleResult(
                success=False,
                affected_count=0,
                message="Reset job is already running",
                ran_at=ran_at,
                already_running=True,
            )

        lock_held = False
        try:
            if self.leader_lock is not None:
                try:
                    lock_held = await self.leader_lock.acquire()
                except Exception as e:
                    logger.warning(
                        f"Leader lock unavailable ({type(e).__name__}: {e}); "
                        "running reset without it"
                    )
                else:
                    if not lock_held:
                        logger.info("Another instance holds the reset lock, skipping cycle")
                        return CycleResult(
                            success=True,
                            affected_count=0,
                            message="Reset handled by another instance",
                            ran_at=ran_at,
                            skipped=True,
                        )

            logger.info("Starting daily lives reset job...")
            try:
                affected, attempts = await self._reset_with_retry()
            except ResetAttemptsExhausted as e:
                self.consecutive_failures += 1
                self.last_error = str(e.last_error)
                logger.error(
                    f"AUDIT: Daily lives reset failed (consecutive failures: {self.consecutive_failures}): "
                    f"{e.last_error}"
                )
                if self.consecutive_failures >= self.alert_threshold:
                    await self.notifier.send(
                        ResetAlert(
                            consecutive_failures=self.consecutive_failures,
                            last_error=self.last_error,
                            last_successful_reset=self.last_successful_reset,
                            timestamp=self.clock.now(),
                        )
                    )
                return CycleResult(
                    success=False,
                    affected_count=0,
                    message=f"Reset failed: {e.last_error}",
                    ran_at=ran_at,
                    attempts=e.attempts,
                    error=self.last_error,
                )

            self.last_successful_reset = self.clock.now()
            self.consecutive_failures = 0
            self.last_error = None
            logger.info(
                f"AUDIT: Daily lives reset completed successfully. {affected} users processed."
            )
            return CycleResult(
                success=True,
                affected_count=affected,
                message=f"Reset completed successfully. {affected} users processed.",
                ran_at=ran_at,
                attempts=attempts,
            )
        finally:
            if lock_held:
                try:
                    await self.leader_lock.release()
                except Exception as e:
                    logger.warning(f"Failed to release reset lock: {e}")
            self._leave()

    async def trigger_now(self) -> CycleResult:
        """Manual trigger for operations or emergency resets.

        Shares the single-flight guard with the scheduled path and returns
        immediately with already_running=True instead of waiting. Manual
        failures do not count as failed daily cycles.
        """
        ran_at = self.clock.now()
        if not self._try_enter():
            return CycleResult(
                success=False,
                affected_count=0,
                message="Reset job is already running",
                ran_at=ran_at,
                already_running=True,
            )

        logger.info("AUDIT: Manual daily lives reset triggered")
        try:
            affected, attempts = await self._reset_with_retry()
        except ResetAttemptsExhausted as e:
            logger.error(f"AUDIT: Manual reset failed: {e.last_error}")
            return CycleResult(
                success=False,
                affected_count=0,
                message=f"Manual reset failed: {e.last_error}",
                ran_at=ran_at,
                attempts=e.attempts,
                error=str(e.last_error),
            )
        else:
            self.last_successful_reset = self.clock.now()
            self.consecutive_failures = 0
            self.last_error = None
            logger.info(f"AUDIT: Manual reset completed successfully. {affected} users processed.")
            return CycleResult(
                success=True,
                affected_count=affected,
                message=f"Manual reset completed successfully. {affected} users processed.",
                ran_at=ran_at,
                attempts=attempts,
            )
        finally:
            self._leave()

    async def start(self) -> None:
        """Start the background trigger loop."""
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Daily lives reset scheduler started; next run at {self.next_scheduled_run().isoformat()}")

    async def stop(self) -> None:
        """Stop the background trigger loop."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self.leader_lock is not None:
            await self.leader_lock.close()
        logger.info("Daily lives reset scheduler stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            target = self.next_scheduled_run()
            delay = max((target - self.clock.now()).total_seconds(), 0.0)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            if self.clock.now() < target:
                # Woke early; wait again for the same trigger
                continue
            try:
                await self.run_scheduled_cycle()
            except Exception as e:
                logger.error(f"Unexpected error in reset scheduler loop: {e}")


_reset_scheduler: Optional[ResetScheduler] = None


def get_reset_scheduler() -> ResetScheduler:
    """Get the global reset scheduler instance."""
    global _reset_scheduler
    if _reset_scheduler is None:
        leader_lock = RedisLeaderLock() if settings.redis_enabled else None
        _reset_scheduler = ResetScheduler(leader_lock=leader_lock)
    return _reset_scheduler


def reset_reset_scheduler() -> None:
    """Reset the global reset scheduler instance."""
    global _reset_scheduler
    _reset_scheduler = None

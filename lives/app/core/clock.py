"""Clock abstraction and calendar helpers for the daily reset.

"Today" and the next reset instant are always derived from an injected
clock in a fixed reference time zone, so behaviour does not depend on the
server's locale and tests can move time forward deterministically.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo


class Clock:
    """Source of the current time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Manually controlled clock for tests and replays.

    Example:
        >>> clock = FixedClock(datetime(2026, 3, 1, 12, tzinfo=timezone.utc))
        >>> clock.advance(days=1)
        >>> clock.now().day
        2
    """

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def advance(self, **delta) -> None:
        self._current = self._current + timedelta(**delta)


def today_in(clock: Clock, tz: tzinfo) -> date:
    """Calendar date of clock.now() in the reference time zone."""
    return clock.now().astimezone(tz).date()


def next_reset_at(now: datetime, tz: tzinfo, hour: int, minute: int = 0) -> datetime:
    """Next occurrence of the daily trigger time strictly after now.

    Args:
        now: Aware datetime
        tz: Reference time zone the trigger time is expressed in
        hour: Trigger hour (0-23)
        minute: Trigger minute (0-59)

    Returns:
        Aware datetime in UTC
    """
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), time(hour, minute), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(
            local_now.date() + timedelta(days=1), time(hour, minute), tzinfo=tz
        )
    return candidate.astimezone(timezone.utc)

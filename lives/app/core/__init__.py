"""Core utilities for the lives service."""

from lives.app.core.clock import Clock, FixedClock, SystemClock, next_reset_at, today_in
from lives.app.core.config import settings
from lives.app.core.logging import get_logger, setup_logging

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "next_reset_at",
    "today_in",
    "settings",
    "get_logger",
    "setup_logging",
]

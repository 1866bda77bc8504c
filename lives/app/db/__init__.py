"""Database package for the lives service.

This package provides:
- The QuotaRecord model
- Asynchronous session management
- CRUD operations backing the quota store
"""

from lives.app.db.base import Base
from lives.app.db.models import QuotaRecord
from lives.app.db.async_session import (
    close_async_engine,
    get_async_engine,
    get_async_session_maker,
)

__all__ = [
    "Base",
    "QuotaRecord",
    "close_async_engine",
    "get_async_engine",
    "get_async_session_maker",
]

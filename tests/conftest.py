from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from lives.app.core.clock import FixedClock
from lives.app.db.init_db import init_database
from lives.app.services.quota import QuotaService, reset_quota_service
from lives.app.services.quota_gate import reset_quota_gate
from lives.app.services.reset_scheduler import reset_reset_scheduler

# Noon on a Tuesday; the next 01:00 UTC trigger is the following morning
START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def sqlite_url(path) -> str:
    # SQLAlchemy expects 4 slashes for absolute paths.
    return f"sqlite+aiosqlite:////{str(path).lstrip('/')}"


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global service instances before and after each test."""
    reset_quota_service()
    reset_quota_gate()
    reset_reset_scheduler()
    yield
    reset_quota_service()
    reset_quota_gate()
    reset_reset_scheduler()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # NullPool: every session gets its own connection, like separate requests
    engine = create_async_engine(sqlite_url(tmp_path / "lives.db"), poolclass=NullPool)
    await init_database(engine=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def quota_service(session_maker, clock) -> QuotaService:
    return QuotaService(
        session_maker=session_maker,
        clock=clock,
        max_units=5,
        store_timeout=30,
        tz=timezone.utc,
    )

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from lives.app.core.config import Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.max_units == 5
    assert settings.reset_hour == 1
    assert settings.reset_minute == 0
    assert settings.reset_max_attempts == 3
    assert settings.reset_retry_delay_seconds == 5.0
    assert settings.reset_alert_threshold == 3
    assert settings.reset_tz == ZoneInfo("UTC")
    assert settings.user_id_header == "X-User-ID"


def test_database_url_override(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./lives.db")

    settings = Settings(_env_file=None)
    assert settings.database_url == "sqlite+aiosqlite:///./lives.db"


def test_database_url_built_from_parts(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_NAME", "lives_prod")

    settings = Settings(_env_file=None)
    assert settings.database_url.startswith("postgresql+asyncpg://")
    assert "@db.internal:5432/lives_prod" in settings.database_url


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["/api/v1/quiz/"]', ["/api/v1/quiz/"]),
        ("/api/v1/quiz/,/api/v1/exercise/", ["/api/v1/quiz/", "/api/v1/exercise/"]),
        ("[]", []),
        ("", []),
    ],
)
def test_gated_paths_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("LIVES_GATED_PATHS", raw)

    settings = Settings(_env_file=None)
    assert settings.lives_gated_paths == expected


@pytest.mark.parametrize(
    ("env_name", "value"),
    [
        ("MAX_UNITS", "0"),
        ("RESET_HOUR", "24"),
        ("RESET_MINUTE", "60"),
        ("RESET_TIMEZONE", "Mars/Olympus"),
        ("STORE_TIMEOUT_SECONDS", "0"),
        ("RESET_RETRY_DELAY_SECONDS", "-1"),
        ("RESET_ALERT_THRESHOLD", "0"),
    ],
)
def test_invalid_values_rejected(monkeypatch, env_name: str, value: str) -> None:
    monkeypatch.setenv(env_name, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)

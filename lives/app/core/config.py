import json
import re
from typing import Annotated, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate comma/whitespace separated values so a
    # misconfigured deployment does not crash at startup.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    seen: set[str] = set()
    result: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part or part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # PostgreSQL settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "lives"
    db_password: str = "lives123"
    db_name: str = "lives"

    # Connection pool settings
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30  # Seconds to wait for a pooled connection
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0  # asyncpg per-command timeout

    # Explicit DATABASE_URL (takes priority over db_* settings)
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    @property
    def database_url(self) -> str:
        """Build database connection URL.

        Priority:
        1. database_url_override (from DATABASE_URL env var or .env file)
        2. Built from db_* settings
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # Quota settings
    max_units: int = 5
    store_timeout_seconds: float = 5.0  # Upper bound for every store call

    # Daily reset schedule
    reset_timezone: str = "UTC"
    reset_hour: int = 1
    reset_minute: int = 0
    reset_max_attempts: int = 3
    reset_retry_delay_seconds: float = 5.0
    reset_alert_threshold: int = 3  # Consecutive failed cycles before alerting
    scheduler_enabled: bool = True

    # Alerting
    alert_webhook_url: str = ""  # Empty = log-only alerts
    alert_timeout_seconds: float = 10.0

    # Redis leader lock for the scheduled reset (optional)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    scheduler_lock_key: str = "lives:scheduler:daily-reset"
    scheduler_lock_ttl_seconds: int = 300

    # Gate settings. Prefixes of host-platform routes (mounted alongside this
    # app) that LivesGateMiddleware checks; the /v1/lives routes gate themselves.
    lives_gated_paths: Annotated[list[str], NoDecode] = [
        "/api/v1/progress",
        "/api/v1/quiz/",
        "/api/v1/exercise/",
        "/api/v1/assessment/",
    ]
    user_id_header: str = "X-User-ID"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", "lives_gated_paths", mode="before")
    @classmethod
    def decode_list(cls, v: Any) -> list[str]:
        return _parse_list(v)

    @field_validator("max_units", "reset_max_attempts", "reset_alert_threshold")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate counters are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "store_timeout_seconds", "alert_timeout_seconds", "db_command_timeout"
    )
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("reset_retry_delay_seconds")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("reset_retry_delay_seconds must not be negative")
        return v

    @field_validator("reset_hour")
    @classmethod
    def validate_reset_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("reset_hour must be between 0 and 23")
        return v

    @field_validator("reset_minute")
    @classmethod
    def validate_reset_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("reset_minute must be between 0 and 59")
        return v

    @field_validator("reset_timezone")
    @classmethod
    def validate_reset_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @property
    def reset_tz(self) -> ZoneInfo:
        return ZoneInfo(self.reset_timezone)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()

"""Application settings loaded from environment variables and .env files.

Hey future me - settings are GROUPED like ``settings.database.url`` or
``settings.search.timeout_seconds``. Environment variables use ``__`` as the
nesting delimiter:

    DATABASE__URL=sqlite+aiosqlite:///./grabarr.db
    SEARCH__MAX_PARALLEL_SEARCHES=8
    HEALTH__BASE_BACKOFF_MINUTES=5
    OBSERVABILITY__LOG_JSON_FORMAT=true

get_settings() is cached - tests that need other values should build
``Settings(...)`` directly instead of patching the environment.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./grabarr.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Pool settings only apply to server databases (PostgreSQL)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class SearchSettings(BaseModel):
    """Indexer fan-out settings."""

    max_parallel_searches: int = Field(default=4, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)
    # Automatic re-searches after a queue item fails (per failure)
    max_research_retries: int = Field(default=1, ge=0, le=1)


class SchedulerSettings(BaseModel):
    """Worker loop intervals."""

    sync_interval_seconds: int = Field(default=900, ge=1)
    pending_check_interval_seconds: int = Field(default=60, ge=1)
    status_poll_interval_seconds: int = Field(default=30, ge=1)


class HealthSettings(BaseModel):
    """Integration circuit breaker settings."""

    base_backoff_minutes: int = Field(default=5, ge=1)
    max_backoff_minutes: int = Field(default=1440, ge=1)
    max_escalation_level: int = Field(default=10, ge=1)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "grabarr"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()

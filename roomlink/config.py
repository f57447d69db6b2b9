"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./roomlink.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    sqlite_busy_timeout: float = Field(
        default=15.0,
        description="Seconds a SQLite connection waits for the write lock before failing.",
    )
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    price_cache_ttl: int = Field(default=60, description="TTL (s) for cached room price quotes")
    low_availability_threshold: int = Field(
        default=2, description="Rooms at or below this many free units are reported as low availability"
    )

    log_dir: str = Field(default="logs", description="Directory for per-service audit logs")
    upload_dir: str = Field(default="uploads", description="Root directory of the local blob store")
    upload_base_url: str = Field(
        default="http://localhost:8002", description="Public base URL under which uploads are served"
    )
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, description="Largest accepted upload (bytes)")

    rooms_service_port: int = 8002
    bookings_service_port: int = 8003


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()

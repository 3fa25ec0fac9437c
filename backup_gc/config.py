# backup_gc/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache
from typing import ClassVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Controller settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="Database holding the backups and delete_backup_requests tables",
    )

    DB_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10,
        gt=0,
        description="Connect timeout for database connections",
    )
    DB_STATEMENT_TIMEOUT_SECONDS: float = Field(
        default=30,
        gt=0,
        description="Server-side statement timeout (Postgres); bounds a hung delete request submission",
    )

    # Garbage collection
    GC_SYNC_PERIOD_SECONDS: float = Field(
        default=3600,
        description="Interval between full rescans of the backup cache. Raised to 60s if lower.",
    )
    GC_WORKERS: int = Field(
        default=1,
        ge=1,
        description="Number of worker threads reconciling backup keys",
    )
    INFORMER_POLL_SECONDS: float = Field(
        default=30,
        gt=0,
        description="How often the backup cache is refreshed from the backup store",
    )
    DELETE_REQUEST_CLIENT: str = Field(
        default="sql",
        description="Delete request client: sql, dry-run",
    )

    # Requeue backoff
    RETRY_BASE_DELAY_SECONDS: float = Field(
        default=0.005,
        gt=0,
        description="Initial backoff for a key whose reconciliation failed",
    )
    RETRY_MAX_DELAY_SECONDS: float = Field(
        default=1000,
        gt=0,
        description="Upper bound on per-key backoff",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    LOG_JSON: bool = Field(default=True, description="Emit single-line JSON logs")

    # HTTP
    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="API key for /v1/admin endpoints",
    )
    HTTP_HOST: str = Field(default="0.0.0.0")
    HTTP_PORT: int = Field(default=8080)

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    DELETE_REQUEST_CLIENTS: ClassVar[set[str]] = {"sql", "dry-run"}

    @field_validator("DELETE_REQUEST_CLIENT")
    @classmethod
    def validate_client(cls, v: str) -> str:
        name = v.lower().strip()
        if name not in cls.DELETE_REQUEST_CLIENTS:
            raise ValueError(f"Unknown delete request client: {v}. Available: sql, dry-run")
        return name

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings. Call at startup to validate config."""
    return Settings()

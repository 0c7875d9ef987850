"""Configuration management for the verification service."""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    app_name: str = "verification-service"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = Field(
        default="sqlite:///./verification_service.db",
        description="SQLAlchemy connection string for the policy store",
    )
    db_echo: bool = False
    sqlite_busy_timeout_seconds: float = 30.0

    # Numbering
    numbering_max_attempts: int = Field(
        default=10, description="Allocation attempts before giving up on a unique number"
    )
    numbering_preview_types: list[str] = Field(
        default_factory=lambda: ["auto", "health", "property", "life", "travel"]
    )

    # Insurer feeds
    feed_timeout_seconds: float = 30.0
    feed_max_attempts: int = Field(
        default=2, description="Transport-level attempts per feed fetch"
    )
    feed_retry_backoff_seconds: float = 1.0

    # Scheduling
    sync_timezone: str = "Africa/Monrovia"
    sync_realtime_minutes: int = 5
    sync_daily_hour: int = 6
    sync_weekly_day: str = "mon"
    sweep_cron: str = "0 2 * * *"
    scheduler_max_workers: int = 4

    # Verification
    verification_candidate_limit: int = 5

    # Observability
    metrics_enabled: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("numbering_max_attempts", "feed_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempt counts must be at least 1")
        return v

    @field_validator("sync_daily_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if v < 0 or v > 23:
            raise ValueError("sync_daily_hour must be between 0 and 23")
        return v


# Global settings instance
settings = Settings()

"""
Configuration management for the Reddit Notifier daemon.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation.
"""

from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

# Reddit's unauthenticated limit is roughly 60 requests per minute
MAX_RATE_LIMIT_PER_MINUTE = 50


class PollingConfig(BaseModel):
    """Polling and reconciliation settings."""

    rate_limit_per_minute: int = Field(
        default=4, description="Upstream fetches allowed per rolling minute"
    )
    rate_limit_window_seconds: float = Field(
        default=60.0, description="Length of the rolling rate limit window"
    )
    poll_interval_seconds: float = Field(
        default=60.0, description="Delay between polls of a single topic"
    )
    reconcile_interval_seconds: float = Field(
        default=30.0, description="Delay between subscription reconciliations"
    )
    stop_timeout_seconds: float = Field(
        default=30.0, description="Grace period for a poller to exit when stopped"
    )
    post_max_age_hours: float = Field(
        default=24.0, description="Posts older (or newer) than this are ignored"
    )


class StorageConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(..., description="Database URL")
    max_retries: int = Field(default=5, description="Connection attempts at startup")
    initial_delay_ms: int = Field(
        default=500, description="Delay before the second connection attempt"
    )
    max_delay_ms: int = Field(default=5000, description="Upper bound on retry delay")
    retention_days: int = Field(
        default=30, description="Days to keep ledger entries (0 keeps forever)"
    )
    cleanup_interval_hours: float = Field(
        default=24.0, description="Minimum time between ledger cleanups"
    )


class DeliveryConfig(BaseModel):
    """Outbound notification settings."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts per delivery")
    base_delay_seconds: float = Field(
        default=1.0, description="First retry delay, doubled on every attempt"
    )
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = Field(
        ..., description="Database URL (e.g. sqlite://data.db)"
    )
    db_max_retries: int = Field(default=5, description="Database connect attempts")
    db_initial_delay_ms: int = Field(
        default=500, description="Initial database connect retry delay"
    )
    db_max_delay_ms: int = Field(
        default=5000, description="Maximum database connect retry delay"
    )
    ledger_retention_days: int = Field(
        default=30, description="Days to keep notified posts (0 disables cleanup)"
    )
    ledger_cleanup_interval_hours: float = Field(
        default=24.0, description="Hours between ledger cleanups"
    )

    # Reddit configuration
    reddit_user_agent: str = Field(
        default="reddit_notifier (https://github.com/example)",
        description="User-Agent header sent to Reddit",
    )
    reddit_base_url: str = Field(
        default="https://www.reddit.com", description="Reddit base URL"
    )
    reddit_rate_limit_per_minute: int = Field(
        default=4, description="Reddit API requests per minute across all topics"
    )

    # Polling configuration
    poll_interval_seconds: float = Field(
        default=60.0, description="Seconds between polls of one topic"
    )
    reconcile_interval_seconds: float = Field(
        default=30.0, description="Seconds between subscription reconciliations"
    )
    poller_stop_timeout_seconds: float = Field(
        default=30.0, description="Seconds to wait for a poller to stop"
    )
    post_max_age_hours: float = Field(
        default=24.0, description="Ignore posts outside this window"
    )

    # Delivery configuration
    http_timeout_seconds: float = Field(default=10.0, description="HTTP timeout")
    delivery_max_attempts: int = Field(
        default=3, description="Attempts per endpoint delivery"
    )
    delivery_base_delay_seconds: float = Field(
        default=1.0, description="Initial delivery retry delay"
    )

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    @field_validator("reddit_rate_limit_per_minute")
    @classmethod
    def cap_rate_limit(cls, v: int) -> int:
        """Keep the request budget inside Reddit's published limits."""
        if v < 1:
            raise ValueError("reddit_rate_limit_per_minute must be at least 1")
        if v > MAX_RATE_LIMIT_PER_MINUTE:
            logger.warning(
                "Rate limit exceeds safe maximum, capping",
                requested=v,
                maximum=MAX_RATE_LIMIT_PER_MINUTE,
            )
            return MAX_RATE_LIMIT_PER_MINUTE
        return v

    @field_validator("delivery_max_attempts", "db_max_retries")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Validate retry ceilings."""
        if v < 1:
            raise ValueError("attempt ceilings must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @property
    def polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        return PollingConfig(
            rate_limit_per_minute=self.reddit_rate_limit_per_minute,
            poll_interval_seconds=self.poll_interval_seconds,
            reconcile_interval_seconds=self.reconcile_interval_seconds,
            stop_timeout_seconds=self.poller_stop_timeout_seconds,
            post_max_age_hours=self.post_max_age_hours,
        )

    @property
    def storage_config(self) -> StorageConfig:
        """Get storage configuration."""
        return StorageConfig(
            url=self.database_url,
            max_retries=self.db_max_retries,
            initial_delay_ms=self.db_initial_delay_ms,
            max_delay_ms=self.db_max_delay_ms,
            retention_days=self.ledger_retention_days,
            cleanup_interval_hours=self.ledger_cleanup_interval_hours,
        )

    @property
    def delivery_config(self) -> DeliveryConfig:
        """Get delivery configuration."""
        return DeliveryConfig(
            max_attempts=self.delivery_max_attempts,
            base_delay_seconds=self.delivery_base_delay_seconds,
            timeout_seconds=self.http_timeout_seconds,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = Settings()  # type: ignore[call-arg,unused-ignore]
        except ValueError as e:
            if "database_url" in str(e):
                raise ValueError(
                    "DATABASE_URL environment variable is required "
                    "(e.g. sqlite://data.db)."
                ) from e
            raise
    return _settings_instance


def __getattr__(name: str) -> Any:
    """Allow module-level access to settings attributes."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

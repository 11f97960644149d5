"""
Configuration Management for Life Kernel

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: Only limits and boundary behaviour are configurable.
Anything that changes what a replay produces (the pattern TTL, event
semantics) is a constant in the domain modules, so folding the same
events gives the same state in every environment.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KernelSettings(BaseSettings):
    """
    Kernel settings.

    Loads configuration from LIFE_KERNEL_* environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIFE_KERNEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Local time
    timezone: str = Field(
        default="UTC",
        description="IANA timezone used for day, week and month boundaries"
    )

    # Command limits
    focus_capacity: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of tasks in focus at once"
    )
    dependency_walk_depth: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Maximum hops followed when checking task dependency cycles"
    )
    max_active_habits: int = Field(
        default=15,
        ge=1,
        description="Maximum number of non-archived habits"
    )
    hard_mode_max_days: int = Field(
        default=14,
        ge=1,
        le=60,
        description="Longest hard mode window, and longest single extension, in days"
    )

    # Read-path windows
    checkin_window_days: int = Field(
        default=14,
        ge=1,
        description="Days of check-ins used for rolling mood/energy averages"
    )
    review_interval_days: int = Field(
        default=7,
        ge=1,
        description="Days after the last closed or skipped review before a new one is due"
    )

    # Policy engine
    max_suggestions: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of suggestions surfaced per policy run"
    )

    # Host adapter
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for store calls that fail with a connection error"
    )
    storage_retry_min_wait_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Minimum backoff between store retries"
    )
    storage_retry_max_wait_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Maximum backoff between store retries"
    )

    log_level: str = Field(
        default="INFO",
        description="Log level for the kernel audit logger"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the zoneinfo database doesn't know."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> KernelSettings:
    """
    Get kernel settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return KernelSettings()

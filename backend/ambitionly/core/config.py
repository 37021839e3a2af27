"""
Ambitionly Core - Configuration
===============================

All engine settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Ambitionly Core"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"

    # ==========================================================================
    # API
    # ==========================================================================
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    # ==========================================================================
    # Durable storage (local key/value store)
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./ambitionly.db"
    DATABASE_ECHO: bool = False

    # ==========================================================================
    # Input limits
    # ==========================================================================
    GOAL_MAX_LENGTH: int = 500
    TIMELINE_MAX_LENGTH: int = 100
    TIME_COMMITMENT_MAX_LENGTH: int = 100
    ANSWER_MAX_LENGTH: int = 1000

    # ==========================================================================
    # Plan generation
    # ==========================================================================
    GENERATION_URL: str = "https://toolkit.rork.com/text/llm/"
    GENERATION_TIMEOUT_SECONDS: float = 45.0
    GENERATION_RETRIES: int = 3
    BACKOFF_FACTOR: float = 2.0
    MIN_BACKOFF_SECONDS: float = 0.5
    MAX_BACKOFF_SECONDS: float = 5.0
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_OPEN_SECONDS: float = 20.0

    # ==========================================================================
    # Timers & notifications
    # ==========================================================================
    DEFAULT_TASK_MINUTES: int = 20
    MIN_NOTIFICATION_DELAY_SECONDS: float = 5.0
    TIMER_CHECK_INTERVAL_SECONDS: float = 1.0
    SINGLE_ACTIVE_TIMER: bool = True

    # ==========================================================================
    # Remote sync
    # ==========================================================================
    SYNC_ENABLED: bool = True
    SYNC_DEBOUNCE_SECONDS: float = 2.0
    SYNC_PERIODIC_SECONDS: float = 120.0
    SYNC_FOREGROUND_THRESHOLD_SECONDS: float = 30.0
    PREMIUM_CHECK_ATTEMPTS: int = 3
    PREMIUM_CHECK_DELAY_SECONDS: float = 2.0
    ACCOUNT_API_URL: str = "http://localhost:8787/api/trpc"
    ACCOUNT_API_KEY: str | None = None
    ACCOUNT_API_TIMEOUT_SECONDS: float = 30.0

    # Identity used by the HTTP surface when no session collaborator is wired
    ACCOUNT_EMAIL: str | None = None
    ACCOUNT_USER_ID: str | None = None

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL

    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()

"""
Configuration settings for cardwise.

Uses Pydantic Settings for environment variable management with .env file support.
Every field can be overridden with a CARDWISE_ prefixed variable, e.g.
CARDWISE_DATABASE_URL or CARDWISE_FSRS_REQUEST_RETENTION.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".cardwise"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CARDWISE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'cardwise.db'}",
        description="SQLAlchemy connection string (sqlite or postgresql)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # FSRS Settings (for spaced repetition)
    # ========================================
    fsrs_parameters_version: str = Field(
        default="fsrs-v4",
        description="Pinned weight vector version",
    )
    fsrs_request_retention: float = Field(
        default=0.9,
        ge=0.7,
        le=0.99,
        description="Target retention rate for scheduling",
    )
    fsrs_maximum_interval: int = Field(
        default=365,
        ge=1,
        description="Ceiling on any review interval (days)",
    )
    fsrs_enable_fuzz: bool = Field(
        default=False,
        description="Spread due dates with deterministic jitter",
    )
    learning_steps_minutes: list[float] = Field(
        default=[1.0, 10.0],
        description="Learning step sequence for new cards (minutes)",
    )
    relearning_steps_minutes: list[float] = Field(
        default=[10.0],
        description="Relearning step sequence after a lapse (minutes)",
    )
    graduating_interval_days: int = Field(
        default=1,
        ge=1,
        description="Interval when a card completes its learning steps",
    )
    easy_interval_days: int = Field(
        default=4,
        ge=1,
        description="Interval when a new or learning card is rated Easy",
    )

    # ========================================
    # Study Sessions
    # ========================================
    new_cards_limit: int = Field(
        default=20,
        ge=0,
        description="Maximum new cards per session",
    )
    review_limit: int = Field(
        default=100,
        ge=0,
        description="Maximum due reviews per session",
    )
    interleave_queue: bool = Field(
        default=True,
        description="Interleave new cards between due reviews",
    )
    persistence_retry_attempts: int = Field(
        default=2,
        ge=1,
        description="Total write attempts on transient persistence failure",
    )

    # ========================================
    # Stats
    # ========================================
    mature_threshold_days: float = Field(
        default=21.0,
        gt=0,
        description="Stability (days) at which a review card counts as mature",
    )

    # ========================================
    # Local user / content
    # ========================================
    default_user_id: str = Field(
        default="local",
        description="User id used by the CLI when --user is not given",
    )
    deck_path: str | None = Field(
        default=None,
        description="JSON file with card ids, tags and structure ids",
    )

    @field_validator("learning_steps_minutes", "relearning_steps_minutes")
    @classmethod
    def _steps_positive(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("step list must not be empty")
        if any(step <= 0 for step in value):
            raise ValueError("steps must be positive")
        return value

    def get_fsrs_config(self) -> dict[str, object]:
        """Get FSRS scheduling configuration as a dictionary."""
        return {
            "version": self.fsrs_parameters_version,
            "request_retention": self.fsrs_request_retention,
            "maximum_interval": self.fsrs_maximum_interval,
            "enable_fuzz": self.fsrs_enable_fuzz,
            "learning_steps_minutes": list(self.learning_steps_minutes),
            "relearning_steps_minutes": list(self.relearning_steps_minutes),
            "graduating_interval_days": self.graduating_interval_days,
            "easy_interval_days": self.easy_interval_days,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

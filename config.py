"""
Configuration settings for the recital scheduling engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every setting can be overridden with a RECITAL_-prefixed environment variable,
e.g. RECITAL_DAILY_GOAL=30.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RECITAL_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///~/.recital/state.db",
        description="SQLAlchemy URL for the review state store",
    )

    # ========================================
    # Queue Building
    # ========================================
    daily_goal: int = Field(
        default=20,
        ge=1,
        description="Items per mixed session",
    )
    mixed_due_ratio: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Share of a mixed session reserved for due items",
    )
    default_due_limit: int = Field(
        default=100,
        ge=1,
        description="Due items per session when the caller gives no limit",
    )
    default_new_limit: int = Field(
        default=20,
        ge=1,
        description="New items per session when the caller gives no limit",
    )

    # ========================================
    # Analytics
    # ========================================
    difficulty_min_reviews: int = Field(
        default=5,
        ge=1,
        description="Reviews before an item gets a difficulty score",
    )
    mastery_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive correct answers that count as mastered",
    )
    hardest_items_limit: int = Field(
        default=5,
        ge=0,
        description="Hardest items listed in analytics",
    )

    # ========================================
    # Reliability
    # ========================================
    storage_retry_attempts: int = Field(
        default=1,
        ge=0,
        description="Retries for a failed store operation before surfacing it",
    )

    # ========================================
    # Study Interface
    # ========================================
    expected_response_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Expected answer time used to infer a rating from speed",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def get_engine_config(self) -> dict[str, Any]:
        """Get engine configuration as a dictionary."""
        return {
            "queue": {
                "daily_goal": self.daily_goal,
                "mixed_due_ratio": self.mixed_due_ratio,
                "default_due_limit": self.default_due_limit,
                "default_new_limit": self.default_new_limit,
            },
            "stats": {
                "min_reviews": self.difficulty_min_reviews,
                "mastery_threshold": self.mastery_threshold,
                "hardest_items_limit": self.hardest_items_limit,
            },
            "storage_retry_attempts": self.storage_retry_attempts,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

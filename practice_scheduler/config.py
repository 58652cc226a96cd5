"""
Configuration settings for the practice scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
Engine thresholds live in the per-module config dataclasses
(SchedulerConfig, DifficultyConfig, QueueConfig); only the knobs an
operator is expected to tune are exposed here.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from practice_scheduler.scheduling.review_queue import QueueConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PRACTICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    db_path: Path = Field(
        default=Path.home() / ".practice" / "progress.db",
        description="SQLite file holding review cards, attempts and sessions",
    )
    catalog_path: Path = Field(
        default=Path("items"),
        description="JSON file or directory of JSON files with practice items",
    )

    # ========================================
    # Queue Building
    # ========================================
    daily_target: int = Field(
        default=20,
        ge=1,
        description="Target number of reviews per day",
    )
    min_daily_reviews: int = Field(
        default=10,
        ge=1,
        description="Lower bound for the adaptive daily review count",
    )
    max_daily_reviews: int = Field(
        default=50,
        ge=1,
        description="Upper bound for the adaptive daily review count",
    )
    forecast_days: int = Field(
        default=7,
        ge=1,
        description="Default horizon for the weekly workload forecast",
    )
    strict_enrichment: bool = Field(
        default=True,
        description="Raise when a due card has no catalog entry (False: log and drop)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging level for the stderr sink",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated by loguru)",
    )

    def get_queue_config(self) -> QueueConfig:
        """Build the queue builder configuration from these settings."""
        return QueueConfig(
            target_daily_reviews=self.daily_target,
            min_daily_reviews=self.min_daily_reviews,
            max_daily_reviews=self.max_daily_reviews,
            strict_enrichment=self.strict_enrichment,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

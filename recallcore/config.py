"""
Centralized configuration management for recallcore.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_DUE_LIMIT, DEFAULT_MINUTES_PER_CARD
from .models import RatingConvention

# --- Path Configuration ---


def get_default_db_path() -> Path:
    """Returns the default path for the database file."""
    return Path.home() / ".recallcore" / "recall.db"


class Settings(BaseSettings):
    """
    Defines application settings, loaded from environment variables or .env files.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECALLCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Core Paths ---
    # Overridden by RECALLCORE_DB_PATH.
    db_path: Path = Field(default_factory=get_default_db_path)

    # --- Learner ---
    owner_id: str = "local"

    # --- Scheduling ---
    rating_convention: RatingConvention = RatingConvention.RECALL
    due_limit: int = Field(default=DEFAULT_DUE_LIMIT, ge=1)
    minutes_per_card: int = Field(default=DEFAULT_MINUTES_PER_CARD, ge=1)
    daily_budget_minutes: int = Field(default=30, ge=1)

    # --- Logging ---
    log_level: str = "WARNING"

    # --- Testing Configuration ---
    # When True, disables safety checks that prevent data loss during tests.
    # Should NEVER be enabled in production. Set via RECALLCORE_TESTING_MODE.
    testing_mode: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()

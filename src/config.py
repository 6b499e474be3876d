"""
Listify: Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram front end
    TELEGRAM_BOT_TOKEN: str = ""

    # SQLite
    DATABASE_PATH: str = "data/listify.db"

    # Security (empty list = anyone may use the bot)
    ALLOWED_USER_IDS: list[int] = []

    # Day boundaries for streaks, and the zone for deadlines given without one
    TIMEZONE: str = "UTC"

    # Completed-task retention sweep
    CLEANUP_HOUR: int = 3
    COMPLETED_TASK_RETENTION_DAYS: int = 4

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("CLEANUP_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"CLEANUP_HOUR out of range: {hour}")
        return hour

    @field_validator("COMPLETED_TASK_RETENTION_DAYS", mode="before")
    @classmethod
    def parse_retention(cls, v: str | int) -> int:
        days = int(v)
        if days < 0:
            raise ValueError(f"COMPLETED_TASK_RETENTION_DAYS must be >= 0, got {days}")
        return days


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/listify.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        CLEANUP_HOUR=os.getenv("CLEANUP_HOUR", "3"),
        COMPLETED_TASK_RETENTION_DAYS=os.getenv("COMPLETED_TASK_RETENTION_DAYS", "4"),
    )


# Singleton, imported by other modules as:
#   from src.config import settings
settings = _load_settings()

"""
HomeTasks — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/hometasks.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Household calendar day + daily reminder
    TIMEZONE: str = "UTC"
    DAILY_REMINDER_HOUR: int = 8

    # Views
    DEFAULT_TREND_WINDOW: str = "week"   # "week" | "month"
    HISTORY_LIMIT: int = 20

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("DAILY_REMINDER_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"DAILY_REMINDER_HOUR must be 0-23, got {hour}")
        return hour

    @field_validator("DEFAULT_TREND_WINDOW", mode="before")
    @classmethod
    def parse_trend_window(cls, v: str) -> str:
        value = (v or "week").strip().lower()
        if value not in ("week", "month"):
            raise ValueError(f"DEFAULT_TREND_WINDOW must be 'week' or 'month', got {v!r}")
        return value


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/hometasks.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DAILY_REMINDER_HOUR=os.getenv("DAILY_REMINDER_HOUR", "8"),
        DEFAULT_TREND_WINDOW=os.getenv("DEFAULT_TREND_WINDOW", "week"),
        HISTORY_LIMIT=int(os.getenv("HISTORY_LIMIT", "20")),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()

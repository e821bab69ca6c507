"""Configuration management from environment variables."""

import os
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from fullkoll.utils.constants import DEFAULT_REMINDER_HOUR, DEFAULT_TIMEZONE
from fullkoll.utils.time_utils import parse_clock

load_dotenv()


def env_flag(name: str, default: str) -> bool:
    """Read a boolean environment variable ("1", "true", "yes", "on")."""
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/fullkoll.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Notification transport: deliver through Telegram, or only log
    TRANSPORT: Literal["telegram", "log"] = os.getenv("TRANSPORT", "telegram")  # type: ignore

    # Engine
    REMINDERS_ENABLED: bool = env_flag("REMINDERS_ENABLED", "true")
    EVALUATION_MODE: str = os.getenv("EVALUATION_MODE", "continuous")
    TIMEZONE: str = os.getenv("TIMEZONE", DEFAULT_TIMEZONE)
    REMINDER_HOUR: int = int(os.getenv("REMINDER_HOUR", str(DEFAULT_REMINDER_HOUR)))
    MAX_CONCURRENCY: int = int(os.getenv("MAX_CONCURRENCY", "8"))
    CANCEL_SUPERSEDED_REFS: bool = env_flag("CANCEL_SUPERSEDED_REFS", "false")
    LOG_NOTIFICATIONS: bool = env_flag("LOG_NOTIFICATIONS", "true")

    # Daily triggers (local time in TIMEZONE)
    REMINDER_RUN_TIME: str = os.getenv("REMINDER_RUN_TIME", "05:00")
    CHARGE_RUN_TIME: str = os.getenv("CHARGE_RUN_TIME", "00:05")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if cls.TRANSPORT not in ("telegram", "log"):
            raise ValueError(f"Unknown TRANSPORT: {cls.TRANSPORT}")

        if cls.TRANSPORT == "telegram" and not cls.TELEGRAM_BOT_TOKEN:
            raise ValueError("TELEGRAM_BOT_TOKEN required when TRANSPORT=telegram")

        if cls.EVALUATION_MODE not in ("continuous", "daily_batch"):
            raise ValueError(f"Unknown EVALUATION_MODE: {cls.EVALUATION_MODE}")

        try:
            ZoneInfo(cls.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown TIMEZONE: {cls.TIMEZONE}") from e

        if not 0 <= cls.REMINDER_HOUR <= 23:
            raise ValueError("REMINDER_HOUR must be between 0 and 23")

        if cls.MAX_CONCURRENCY < 1:
            raise ValueError("MAX_CONCURRENCY must be at least 1")

        for value in (cls.REMINDER_RUN_TIME, cls.CHARGE_RUN_TIME):
            parse_clock(value)

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

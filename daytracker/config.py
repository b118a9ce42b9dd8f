"""Configuration management from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

from daytracker.engine.timing import TimingSettings
from daytracker.utils.constants import (
    DEFAULT_AUTO_ADVANCE_MINUTES,
    DEFAULT_GRACE_MINUTES,
    DEFAULT_REMINDER_WINDOW_SECONDS,
    DEFAULT_TICK_INTERVAL,
)

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/daytracker.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Engine
    TICK_INTERVAL: float = float(os.getenv("TICK_INTERVAL", str(DEFAULT_TICK_INTERVAL)))
    GRACE_MINUTES: int = int(os.getenv("GRACE_MINUTES", str(DEFAULT_GRACE_MINUTES)))
    AUTO_ADVANCE_MINUTES: int = int(
        os.getenv("AUTO_ADVANCE_MINUTES", str(DEFAULT_AUTO_ADVANCE_MINUTES))
    )
    REMINDER_WINDOW_SECONDS: int = int(
        os.getenv("REMINDER_WINDOW_SECONDS", str(DEFAULT_REMINDER_WINDOW_SECONDS))
    )

    @classmethod
    def timing_settings(cls) -> TimingSettings:
        """Build the engine's timing settings."""
        return TimingSettings(
            grace_minutes=cls.GRACE_MINUTES,
            auto_advance_minutes=cls.AUTO_ADVANCE_MINUTES,
            reminder_window_seconds=cls.REMINDER_WINDOW_SECONDS,
        )

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.TELEGRAM_BOT_TOKEN:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        if cls.TICK_INTERVAL <= 0:
            raise ValueError("TICK_INTERVAL must be positive")

        # Raises ValueError for GRACE_MINUTES >= AUTO_ADVANCE_MINUTES
        cls.timing_settings()

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

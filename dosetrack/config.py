"""Configuration management from environment variables."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from dosetrack.utils.constants import (
    DEFAULT_GRACE_MINUTES,
    DEFAULT_TIMEZONE,
    NEXT_DOSE_LOOKAHEAD_MINUTES,
)

load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/dosetrack.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Worker
    HEARTBEAT_INTERVAL: int = int(os.getenv("HEARTBEAT_INTERVAL", "300"))

    # Dose windows
    GRACE_MINUTES: int = int(os.getenv("DOSE_GRACE_MINUTES", str(DEFAULT_GRACE_MINUTES)))
    LOOKAHEAD_MINUTES: int = int(
        os.getenv("NEXT_DOSE_LOOKAHEAD_MINUTES", str(NEXT_DOSE_LOOKAHEAD_MINUTES))
    )

    # Users without a stored profile timezone
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)

    @classmethod
    def validate(cls) -> None:
        """Validate configuration."""
        try:
            ZoneInfo(cls.DEFAULT_TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"DEFAULT_TIMEZONE is not a known timezone: {cls.DEFAULT_TIMEZONE}")

        if cls.GRACE_MINUTES < 0:
            raise ValueError("DOSE_GRACE_MINUTES must not be negative")

        if cls.LOOKAHEAD_MINUTES < 0:
            raise ValueError("NEXT_DOSE_LOOKAHEAD_MINUTES must not be negative")

        if cls.HEARTBEAT_INTERVAL <= 0:
            raise ValueError("HEARTBEAT_INTERVAL must be positive")

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

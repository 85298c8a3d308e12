"""
Configuration for FeedWatcher, read from the environment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_UPDATE_SEC = 1800
DEFAULT_REQUEST_TIMEOUT = 5.0
DEFAULT_USER_AGENT = "FeedWatcher/1.0 (+https://github.com/feedwatcher)"


def _parse_number(value: str | None, default: float) -> float:
    """Parse a positive number from an environment variable."""
    if value is None or not value.strip():
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return number if number > 0 else default


class Config:
    """Application configuration from environment."""

    DB_PATH: Path = Path(
        os.getenv("FEEDWATCHER_DB_PATH", str(Path.home() / ".feedwatcher" / "feedwatcher.db"))
    ).expanduser()

    # Seconds between refresh cycles; also the minimum age of a feed's last
    # update before it is downloaded again
    UPDATE_SEC: float = _parse_number(os.getenv("FEEDWATCHER_UPDATE_SEC"), DEFAULT_UPDATE_SEC)

    REQUEST_TIMEOUT: float = _parse_number(
        os.getenv("FEEDWATCHER_REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT
    )
    USER_AGENT: str = os.getenv("FEEDWATCHER_USER_AGENT", DEFAULT_USER_AGENT)
    LOG_LEVEL: str = os.getenv("FEEDWATCHER_LOG_LEVEL", "INFO").upper()


config = Config()

"""Application-wide settings and configuration."""

from pathlib import Path
from typing import Optional


class Settings:
    """Centralized application settings."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
    DATA_DIR = PROJECT_ROOT / "data"
    LOGS_DIR = PROJECT_ROOT / "logs"

    # Default database settings
    DEFAULT_DB_PATH = DATA_DIR / "mystats.duckdb"

    # Day-of-year alignment. Samples are placed at a fixed hour so that
    # daylight saving transitions never shift a date across midnight.
    TIMEZONE = "Europe/Helsinki"
    REFERENCE_HOUR = 6
    MAX_DAY_OF_YEAR = 366

    # Query settings
    FETCH_BATCH_SIZE = 1000
    DEFAULT_TOP_LIMIT = 10
    DEFAULT_LIST_LIMIT = 100

    @classmethod
    def ensure_directories(cls) -> None:
        """Ensure all required directories exist."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOGS_DIR.mkdir(parents=True, exist_ok=True)

    @classmethod
    def get_db_path(cls, custom_path: Optional[Path] = None) -> Path:
        """Get the database path, with optional override."""
        return custom_path or cls.DEFAULT_DB_PATH

"""
Configuration from environment variables (and an optional .env file).

    LESSONBOOK_DATA_DIR    directory holding enrollments.json, locations.json, closures.json
    LESSONBOOK_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR or CRITICAL (default INFO)
    LESSONBOOK_LOG_FILE    optional path of a rotating log file
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_data_dir() -> Path:
    """
    Default data directory inside the package.
    """
    return Path(__file__).resolve().parent / "data"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @property
    def enrollments_path(self) -> Path:
        return self.data_dir / "enrollments.json"

    @property
    def locations_path(self) -> Path:
        return self.data_dir / "locations.json"

    @property
    def closures_path(self) -> Path:
        return self.data_dir / "closures.json"


def load_settings(env_file: Optional[str | Path] = None) -> Settings:
    """
    Read settings from the environment. Raises ValueError on an unknown log level.
    """
    load_dotenv(env_file)

    data_dir = os.getenv("LESSONBOOK_DATA_DIR")
    log_level = os.getenv("LESSONBOOK_LOG_LEVEL", "INFO").strip().upper()
    log_file = os.getenv("LESSONBOOK_LOG_FILE")

    if log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"LESSONBOOK_LOG_LEVEL must be one of: {', '.join(VALID_LOG_LEVELS)}")

    return Settings(
        data_dir=Path(data_dir) if data_dir else _default_data_dir(),
        log_level=log_level,
        log_file=Path(log_file) if log_file else None,
    )

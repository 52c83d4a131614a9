"""Environment and settings (Pydantic Settings)."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Default data directory: ~/.tempo/data/
_data_dir = Path.home() / ".tempo" / "data"


class Settings(BaseSettings):
    """Tempo settings loaded from environment (TEMPO_*) and .env."""

    model_config = SettingsConfigDict(
        env_prefix="TEMPO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths (local-first data stored in ~/.tempo/data/)
    db_path: Path = _data_dir / "tempo.db"

    # Timeline window and slot search
    day_start_hour: int = 7
    day_end_hour: int = 22
    min_gap_minutes: int = 5
    slot_grid_minutes: int = 5
    max_slot_iterations: int = 100

    # Task duration fallbacks
    default_task_minutes: int = 60
    pomodoro_minutes: int = 25

    # Title for materialized breaks whose rule has no label
    fixed_break_title: str = "Fixed break"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Path = _data_dir / "tempo.log"
    # stderr stays quiet so command output and tables remain readable
    console_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"


def get_settings() -> Settings:
    """Return application settings (singleton-like)."""
    return Settings()

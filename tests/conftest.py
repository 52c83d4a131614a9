"""Global fixtures: temp DB, sample blocks, rules and tasks."""

import tempfile
from datetime import datetime, time
from pathlib import Path

import pytest

from tempo.config import Settings
from tempo.database.sqlite import SqliteDB
from tempo.models import FixedBreakRule, Task, TimeBlock


@pytest.fixture
def temp_db_path() -> Path:
    """Temporary SQLite path (cleaned up after test)."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    if path.exists():
        path.unlink(missing_ok=True)


@pytest.fixture
def db(temp_db_path: Path) -> SqliteDB:
    """Initialized SqliteDB with temp path."""
    d = SqliteDB(temp_db_path)
    d.init_db()
    return d


@pytest.fixture
def settings(temp_db_path: Path, tmp_path: Path) -> Settings:
    """Default settings pointed at the temp DB."""
    return Settings(db_path=temp_db_path, log_file=tmp_path / "tempo.log")


@pytest.fixture
def sample_block() -> TimeBlock:
    """Manual block, Wednesday 2026-03-04 09:00-10:00."""
    return TimeBlock(
        id="block-1",
        title="Standup",
        start_time=datetime(2026, 3, 4, 9, 0),
        end_time=datetime(2026, 3, 4, 10, 0),
    )


@pytest.fixture
def lunch_rule() -> FixedBreakRule:
    """Weekday lunch break 12:00-13:00."""
    return FixedBreakRule(
        id="rule-lunch",
        label="Lunch",
        start_time=time(12, 0),
        end_time=time(13, 0),
        days_of_week=["monday", "tuesday", "wednesday", "thursday", "friday"],
    )


@pytest.fixture
def sample_task() -> Task:
    """Open next action with a one-hour estimate."""
    return Task(
        id="task-1",
        title="Write report",
        estimated_duration_hours=1.0,
    )

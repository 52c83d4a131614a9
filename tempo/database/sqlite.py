"""Relational wrapper for SQLite (time blocks, fixed-break rules, tasks)."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from tempo.core.date_utils import to_local
from tempo.core.errors import StoreIOError
from tempo.models import FixedBreakRule, Task, TimeBlock

logger = logging.getLogger(__name__)


def _iso(value: Optional[object]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string as naive local time, None for invalid input."""
    if not s:
        return None
    try:
        return to_local(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except (ValueError, AttributeError):
        return None


class SqliteDB:
    """SQLite wrapper for the timeline tables. All I/O stays in this module.

    Every sqlite3 failure surfaces as StoreIOError. Rows that no longer
    validate (e.g. a block whose end precedes its start) are logged and
    skipped on read.
    """

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            with sqlite3.connect(self._path) as conn:
                conn.row_factory = sqlite3.Row
                yield conn
        except sqlite3.Error as e:
            raise StoreIOError(f"SQLite error on {self._path.name}: {e}") from e

    def init_db(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS time_blocks (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    task_id TEXT,
                    source TEXT,
                    start_time DATETIME,
                    end_time DATETIME,
                    date TEXT,
                    is_logged INTEGER DEFAULT 0,
                    fixed_break_rule_id TEXT,
                    activity_category_id TEXT,
                    created_at DATETIME,
                    updated_at DATETIME
                )
            """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_blocks_date ON time_blocks(date)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_blocks_rule ON time_blocks(fixed_break_rule_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fixed_break_rules (
                    id TEXT PRIMARY KEY,
                    label TEXT,
                    start_time TEXT,
                    end_time TEXT,
                    days_of_week TEXT,
                    is_enabled INTEGER DEFAULT 1
                )
            """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    category TEXT,
                    completed INTEGER DEFAULT 0,
                    completed_at DATETIME,
                    due_date DATETIME,
                    planned_date DATETIME,
                    is_recurring INTEGER DEFAULT 0,
                    recurrence_rule TEXT,
                    recurrence_end_date DATETIME,
                    recurrence_count INTEGER,
                    estimated_duration_hours REAL,
                    estimated_pomodoros INTEGER,
                    is_deleted INTEGER DEFAULT 0,
                    created_at DATETIME,
                    updated_at DATETIME
                )
            """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_deleted ON tasks(is_deleted)")
            conn.commit()

    # ---- Time blocks ----

    def insert_block(self, block: TimeBlock) -> str:
        """Insert a time block and return its id."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO time_blocks (id, title, task_id, source, start_time,
                                         end_time, date, is_logged, fixed_break_rule_id,
                                         activity_category_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                _block_params(block),
            )
            conn.commit()
        return block.id

    def update_block(self, block: TimeBlock) -> None:
        """Update an existing block by id."""
        params = _block_params(block)
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE time_blocks SET title=?, task_id=?, source=?, start_time=?,
                                       end_time=?, date=?, is_logged=?,
                                       fixed_break_rule_id=?, activity_category_id=?,
                                       created_at=?, updated_at=?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            conn.commit()

    def delete_block(self, block_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM time_blocks WHERE id = ?", (block_id,))
            conn.commit()

    def get_block(self, block_id: str) -> Optional[TimeBlock]:
        """Return one block by id or None."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM time_blocks WHERE id = ?", (block_id,)
            ).fetchone()
        return _row_to_block(row) if row else None

    def find_block_ids(self, prefix: str) -> list[str]:
        """Ids of blocks whose id starts with `prefix`."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id FROM time_blocks WHERE id LIKE ? ESCAPE '\\'",
                (_like_prefix(prefix),),
            ).fetchall()
        return [row["id"] for row in rows]

    def list_blocks(self, day: date) -> list[TimeBlock]:
        """Blocks filed under `day`, ordered by start time."""
        return self.list_blocks_between(day, day)

    def list_blocks_between(self, first: date, last: date) -> list[TimeBlock]:
        """Blocks filed under any day in [first, last], ordered by start time."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM time_blocks WHERE date BETWEEN ? AND ? "
                "ORDER BY start_time ASC",
                (first.isoformat(), last.isoformat()),
            ).fetchall()
        return [b for b in (_row_to_block(r) for r in rows) if b is not None]

    # ---- Fixed-break rules ----

    def insert_rule(self, rule: FixedBreakRule) -> str:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO fixed_break_rules (id, label, start_time, end_time,
                                               days_of_week, is_enabled)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                _rule_params(rule),
            )
            conn.commit()
        return rule.id

    def update_rule(self, rule: FixedBreakRule) -> None:
        params = _rule_params(rule)
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE fixed_break_rules SET label=?, start_time=?, end_time=?,
                                             days_of_week=?, is_enabled=?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            conn.commit()

    def delete_rule(self, rule_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM fixed_break_rules WHERE id = ?", (rule_id,))
            conn.commit()

    def get_rule(self, rule_id: str) -> Optional[FixedBreakRule]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM fixed_break_rules WHERE id = ?", (rule_id,)
            ).fetchone()
        return _row_to_rule(row) if row else None

    def list_rules(self) -> list[FixedBreakRule]:
        """All rules (enabled and disabled), ordered by start time."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM fixed_break_rules ORDER BY start_time ASC"
            ).fetchall()
        return [r for r in (_row_to_rule(row) for row in rows) if r is not None]

    # ---- Tasks ----

    def insert_task(self, task: Task) -> str:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks (id, title, category, completed, completed_at,
                                   due_date, planned_date, is_recurring,
                                   recurrence_rule, recurrence_end_date,
                                   recurrence_count, estimated_duration_hours,
                                   estimated_pomodoros, is_deleted, created_at,
                                   updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                _task_params(task),
            )
            conn.commit()
        return task.id

    def update_task(self, task: Task) -> None:
        params = _task_params(task)
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE tasks SET title=?, category=?, completed=?, completed_at=?,
                                 due_date=?, planned_date=?, is_recurring=?,
                                 recurrence_rule=?, recurrence_end_date=?,
                                 recurrence_count=?, estimated_duration_hours=?,
                                 estimated_pomodoros=?, is_deleted=?, created_at=?,
                                 updated_at=?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            conn.commit()

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

    def list_tasks(self, include_deleted: bool = False) -> list[Task]:
        """Tasks ordered by creation; soft-deleted rows only when asked for."""
        query = "SELECT * FROM tasks"
        if not include_deleted:
            query += " WHERE is_deleted = 0"
        query += " ORDER BY created_at ASC"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [t for t in (_row_to_task(r) for r in rows) if t is not None]


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


def _block_params(block: TimeBlock) -> tuple:
    return (
        block.id,
        block.title,
        block.task_id,
        block.source,
        _iso(block.start_time),
        _iso(block.end_time),
        _iso(block.date),
        int(block.is_logged),
        block.fixed_break_rule_id,
        block.activity_category_id,
        _iso(block.created_at),
        _iso(block.updated_at),
    )


def _rule_params(rule: FixedBreakRule) -> tuple:
    return (
        rule.id,
        rule.label,
        rule.start_time.strftime("%H:%M"),
        rule.end_time.strftime("%H:%M"),
        json.dumps(list(rule.days_of_week)),
        int(rule.is_enabled),
    )


def _task_params(task: Task) -> tuple:
    return (
        task.id,
        task.title,
        task.category,
        int(task.completed),
        _iso(task.completed_at),
        _iso(task.due_date),
        _iso(task.planned_date),
        int(task.is_recurring),
        task.recurrence_rule,
        _iso(task.recurrence_end_date),
        task.recurrence_count,
        task.estimated_duration_hours,
        task.estimated_pomodoros,
        int(task.is_deleted),
        _iso(task.created_at),
        _iso(task.updated_at),
    )


def _row_to_block(row: sqlite3.Row) -> Optional[TimeBlock]:
    """Convert database row to TimeBlock, skipping rows that fail validation."""
    try:
        return TimeBlock(
            id=row["id"],
            title=row["title"] or "",
            task_id=row["task_id"],
            source=row["source"] or "manual",
            start_time=_parse_dt(row["start_time"]),
            end_time=_parse_dt(row["end_time"]),
            date=row["date"],
            is_logged=bool(row["is_logged"]),
            fixed_break_rule_id=row["fixed_break_rule_id"],
            activity_category_id=row["activity_category_id"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )
    except ValidationError as e:
        logger.warning("Skipping malformed time block %s: %s", row["id"], e)
        return None


def _row_to_rule(row: sqlite3.Row) -> Optional[FixedBreakRule]:
    """Convert database row to FixedBreakRule, skipping malformed rows."""
    try:
        days = json.loads(row["days_of_week"] or "[]")
    except json.JSONDecodeError:
        days = []
    try:
        return FixedBreakRule(
            id=row["id"],
            label=row["label"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            days_of_week=days,
            is_enabled=bool(row["is_enabled"]),
        )
    except ValidationError as e:
        logger.warning("Skipping malformed fixed break rule %s: %s", row["id"], e)
        return None


def _row_to_task(row: sqlite3.Row) -> Optional[Task]:
    """Convert database row to Task, skipping malformed rows."""
    try:
        return Task(
            id=row["id"],
            title=row["title"] or "",
            category=row["category"] or "",
            completed=bool(row["completed"]),
            completed_at=_parse_dt(row["completed_at"]),
            due_date=_parse_dt(row["due_date"]),
            planned_date=_parse_dt(row["planned_date"]),
            is_recurring=bool(row["is_recurring"]),
            recurrence_rule=row["recurrence_rule"],
            recurrence_end_date=_parse_dt(row["recurrence_end_date"]),
            recurrence_count=row["recurrence_count"],
            estimated_duration_hours=row["estimated_duration_hours"],
            estimated_pomodoros=row["estimated_pomodoros"],
            is_deleted=bool(row["is_deleted"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )
    except ValidationError as e:
        logger.warning("Skipping malformed task %s: %s", row["id"], e)
        return None

"""Range-bounded task statistics (today / week / month / all)."""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass
from datetime import datetime, time, timedelta
from typing import Iterable, Optional

from tempo.core.date_utils import to_local
from tempo.core.recurrence import task_occurs_in_range
from tempo.models import NEXT_ACTION, RangeToken, Task

Range = tuple[Optional[datetime], Optional[datetime]]


@dataclass
class TaskStats:
    """Counts shown on the task statistics card."""

    total: int = 0
    next_action: int = 0
    in_progress: int = 0
    overdue: int = 0
    completed_in_range: int = 0
    recurring: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def resolve_range(token: RangeToken, now: datetime) -> Range:
    """Window for a range token; 'all' is unbounded on both sides.

    Weeks run Monday to Sunday. Bounds are inclusive (end is 23:59:59.999999).

    Raises:
        ValueError: If the token is unknown.
    """
    today = now.date()
    if token == "today":
        first, last = today, today
    elif token == "week":
        first = today - timedelta(days=today.weekday())
        last = first + timedelta(days=6)
    elif token == "month":
        first = today.replace(day=1)
        last = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    elif token == "all":
        return None, None
    else:
        raise ValueError(f"Unknown range token: {token!r}")
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def _within(moment: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    return (start is None or moment >= start) and (end is None or moment <= end)


def _completed_in_range(task: Task, start: Optional[datetime], end: Optional[datetime]) -> bool:
    completed_at = to_local(task.completed_at)
    return task.completed and completed_at is not None and _within(completed_at, start, end)


def _is_overdue(task: Task, now: datetime) -> bool:
    due = to_local(task.due_date)
    return not task.completed and due is not None and due.date() < now.date()


def is_in_range(
    task: Task, start: Optional[datetime], end: Optional[datetime], now: datetime
) -> bool:
    """Whether a task counts toward the statistics for [start, end].

    Overdue non-recurring work is always counted, whatever the range: the
    selector narrows what is shown but never hides unfinished overdue items.
    """
    if _completed_in_range(task, start, end):
        return True

    planned = to_local(task.planned_date)
    if not task.is_recurring:
        if _is_overdue(task, now):
            return True
        return planned is None or end is None or planned <= end

    if planned is None or (end is not None and planned > end):
        return False
    return task_occurs_in_range(task, start, end)


def aggregate(
    tasks: Iterable[Task], range_token: RangeToken, now: Optional[datetime] = None
) -> TaskStats:
    """Recompute every count from scratch for the given range token.

    Raises:
        ValueError: If range_token is unknown.
    """
    now = now or datetime.now()
    start, end = resolve_range(range_token, now)
    stats = TaskStats()
    for task in tasks:
        if task.is_deleted or not is_in_range(task, start, end, now):
            continue
        stats.total += 1
        if task.is_recurring:
            stats.recurring += 1
        if task.category == NEXT_ACTION:
            stats.next_action += 1
            if not task.completed:
                if _is_overdue(task, now):
                    stats.overdue += 1
                else:
                    stats.in_progress += 1
        if _completed_in_range(task, start, end):
            stats.completed_in_range += 1
    return stats

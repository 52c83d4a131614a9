"""Unit tests for range-bounded task statistics."""

from datetime import datetime, time

import pytest

from tempo.core.stats import TaskStats, aggregate, is_in_range, resolve_range
from tempo.models import Task

NOW = datetime(2026, 3, 4, 10, 0)  # Wednesday
WEEKLY_FROM_WED = '{"frequency":"weekly","startDate":"2026-03-04","endsType":"never"}'


def _task(task_id: str, **kwargs: object) -> Task:
    return Task(id=task_id, title=task_id, **kwargs)


def test_resolve_range_today() -> None:
    start, end = resolve_range("today", NOW)
    assert start == datetime(2026, 3, 4, 0, 0)
    assert end == datetime.combine(NOW.date(), time.max)


def test_resolve_range_week_runs_monday_to_sunday() -> None:
    start, end = resolve_range("week", NOW)
    assert start == datetime(2026, 3, 2)
    assert end.date() == datetime(2026, 3, 8).date()


def test_resolve_range_month() -> None:
    start, end = resolve_range("month", datetime(2026, 2, 10, 8, 0))
    assert start == datetime(2026, 2, 1)
    assert end.date() == datetime(2026, 2, 28).date()


def test_resolve_range_all_and_unknown() -> None:
    assert resolve_range("all", NOW) == (None, None)
    with pytest.raises(ValueError):
        resolve_range("fortnight", NOW)


def test_overdue_task_is_carried_forward() -> None:
    """Overdue work counts for 'today' even though it was planned days ago."""
    overdue = _task(
        "overdue", due_date=datetime(2026, 3, 3, 17, 0), planned_date=datetime(2026, 3, 1)
    )
    stats = aggregate([overdue], "today", NOW)
    assert stats.total == 1
    assert stats.overdue == 1
    assert stats.in_progress == 0
    assert stats.next_action == 1


def test_due_today_is_not_overdue() -> None:
    task = _task("due-today", due_date=datetime(2026, 3, 4, 8, 0))
    stats = aggregate([task], "today", NOW)
    assert stats.overdue == 0
    assert stats.in_progress == 1


def test_future_planned_task_only_in_wider_ranges() -> None:
    friday = _task("friday", planned_date=datetime(2026, 3, 6, 9, 0))
    assert aggregate([friday], "today", NOW).total == 0
    assert aggregate([friday], "week", NOW).total == 1
    assert aggregate([friday], "all", NOW).total == 1


def test_unplanned_task_always_counts() -> None:
    assert aggregate([_task("loose")], "today", NOW).total == 1


def test_completed_in_range() -> None:
    done = _task(
        "done",
        completed=True,
        completed_at=datetime(2026, 3, 4, 9, 0),
        planned_date=datetime(2026, 3, 4),
    )
    stats = aggregate([done], "today", NOW)
    assert stats.total == 1
    assert stats.completed_in_range == 1
    assert stats.in_progress == 0
    assert stats.overdue == 0


def test_recurring_task_counts_only_on_occurrence() -> None:
    weekly = _task(
        "weekly",
        is_recurring=True,
        recurrence_rule=WEEKLY_FROM_WED.replace("2026-03-04", "2026-02-26"),
        planned_date=datetime(2026, 2, 26),  # Thursday
    )
    assert aggregate([weekly], "today", NOW).total == 0
    stats = aggregate([weekly], "week", NOW)
    assert stats.total == 1
    assert stats.recurring == 1


def test_recurring_task_planned_after_range_end() -> None:
    later = _task(
        "later",
        is_recurring=True,
        recurrence_rule=WEEKLY_FROM_WED,
        planned_date=datetime(2026, 3, 11),
    )
    assert aggregate([later], "today", NOW).total == 0
    assert aggregate([later], "month", NOW).total == 1


def test_recurring_task_occurring_today() -> None:
    weekly = _task(
        "weekly", is_recurring=True, recurrence_rule=WEEKLY_FROM_WED, planned_date=NOW
    )
    stats = aggregate([weekly], "today", NOW)
    assert stats.as_dict() == {
        "total": 1,
        "next_action": 1,
        "in_progress": 1,
        "overdue": 0,
        "completed_in_range": 0,
        "recurring": 1,
    }


def test_malformed_recurring_task_is_excluded() -> None:
    broken = _task(
        "broken",
        is_recurring=True,
        recurrence_rule="{not json",
        planned_date=datetime(2026, 3, 1),
    )
    for token in ("today", "week", "month", "all"):
        assert aggregate([broken], token, NOW).total == 0


def test_malformed_recurring_task_completed_in_range_still_counts() -> None:
    broken = _task(
        "broken",
        is_recurring=True,
        recurrence_rule="{not json",
        planned_date=datetime(2026, 3, 1),
        completed=True,
        completed_at=datetime(2026, 3, 4, 8, 0),
    )
    stats = aggregate([broken], "today", NOW)
    assert stats.total == 1
    assert stats.completed_in_range == 1


def test_deleted_tasks_are_skipped() -> None:
    assert aggregate([_task("gone", is_deleted=True)], "all", NOW) == TaskStats()


def test_other_categories_count_in_total_only() -> None:
    someday = _task("someday", category="someday", due_date=datetime(2026, 2, 1))
    stats = aggregate([someday], "today", NOW)
    assert stats.total == 1
    assert stats.next_action == 0
    assert stats.overdue == 0


def test_is_in_range_matches_total() -> None:
    tasks = [
        _task("a", planned_date=datetime(2026, 3, 4)),
        _task("b", planned_date=datetime(2026, 3, 20)),
        _task("c", due_date=datetime(2026, 1, 1)),
    ]
    start, end = resolve_range("week", NOW)
    included = [t.id for t in tasks if is_in_range(t, start, end, NOW)]
    assert included == ["a", "c"]
    assert aggregate(tasks, "week", NOW).total == len(included)


def test_unknown_range_token() -> None:
    with pytest.raises(ValueError):
        aggregate([], "decade", NOW)

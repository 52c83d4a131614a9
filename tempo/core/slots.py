"""Next-free-slot search on a day's timeline (bounded greedy forward scan)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence

from tempo.config import Settings
from tempo.core.errors import NoSlotAvailable
from tempo.core.intervals import overlaps
from tempo.models import Task, TimeBlock

DEFAULT_GRID_MINUTES = 5
DEFAULT_MAX_ITERATIONS = 100


def round_up_to_grid(moment: datetime, grid_minutes: int = DEFAULT_GRID_MINUTES) -> datetime:
    """Round up to the next grid boundary (seconds count as a started minute)."""
    rounded = moment.replace(second=0, microsecond=0)
    if rounded < moment:
        rounded += timedelta(minutes=1)
    remainder = rounded.minute % grid_minutes
    if remainder:
        rounded += timedelta(minutes=grid_minutes - remainder)
    return rounded


def find_slot(
    blocks: Sequence[TimeBlock],
    duration_minutes: int,
    day_start: datetime,
    day_end: datetime,
    min_gap_minutes: int,
    search_anchor: datetime,
    grid_minutes: int = DEFAULT_GRID_MINUTES,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> tuple[datetime, datetime]:
    """Find the first interval of `duration_minutes` that clears every block.

    Preconditions: `blocks` sorted by start_time; `search_anchor` already
    clamped to >= `day_start` and rounded to the grid.

    Each pass proposes [cursor, cursor + duration). On the first conflict
    (within `min_gap_minutes`) the cursor jumps past that block plus the gap,
    re-rounded to the grid, and the scan restarts.

    Raises:
        ValueError: If duration_minutes is not positive.
        NoSlotAvailable: If the first conflict-free proposal ends after
            `day_end`, or no proposal clears within `max_iterations` passes.
    """
    if duration_minutes <= 0:
        raise ValueError(f"Duration must be positive, got {duration_minutes}")

    duration = timedelta(minutes=duration_minutes)
    gap = timedelta(minutes=min_gap_minutes)
    cursor = search_anchor

    for _ in range(max_iterations):
        proposed_end = cursor + duration
        conflict = next(
            (
                block
                for block in blocks
                if overlaps(
                    cursor, proposed_end, block.start_time, block.end_time, min_gap_minutes
                )
            ),
            None,
        )
        if conflict is not None:
            cursor = round_up_to_grid(conflict.end_time + gap, grid_minutes)
            continue
        if proposed_end > day_end:
            raise NoSlotAvailable(
                duration_minutes, f"no room before {day_end.strftime('%H:%M')}"
            )
        return cursor, proposed_end

    raise NoSlotAvailable(
        duration_minutes, f"gave up after {max_iterations} search steps"
    )


@dataclass(frozen=True)
class SlotConfig:
    """Day bounds, buffer and grid shared by every add-to-timeline caller."""

    day_start_hour: int = 7
    day_end_hour: int = 22
    min_gap_minutes: int = 5
    grid_minutes: int = DEFAULT_GRID_MINUTES
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    @classmethod
    def from_settings(cls, settings: Settings) -> "SlotConfig":
        return cls(
            day_start_hour=settings.day_start_hour,
            day_end_hour=settings.day_end_hour,
            min_gap_minutes=settings.min_gap_minutes,
            grid_minutes=settings.slot_grid_minutes,
            max_iterations=settings.max_slot_iterations,
        )

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        midnight = datetime.combine(day, time.min)
        return (
            midnight + timedelta(hours=self.day_start_hour),
            midnight + timedelta(hours=self.day_end_hour),
        )


class SlotFinder:
    """Applies one SlotConfig to slot searches for a given day."""

    def __init__(self, config: Optional[SlotConfig] = None) -> None:
        self.config = config or SlotConfig()

    def find(
        self,
        blocks: Iterable[TimeBlock],
        duration_minutes: int,
        day: date,
        now: Optional[datetime] = None,
    ) -> tuple[datetime, datetime]:
        """Next free slot on `day`, never earlier than `now` or the day's opening.

        Raises:
            NoSlotAvailable: If the day has no room for the duration.
        """
        day_start, day_end = self.config.day_bounds(day)
        earliest = max(now, day_start) if now is not None else day_start
        anchor = round_up_to_grid(earliest, self.config.grid_minutes)
        ordered = sorted(blocks, key=lambda b: b.start_time)
        return find_slot(
            ordered,
            duration_minutes,
            day_start,
            day_end,
            self.config.min_gap_minutes,
            anchor,
            grid_minutes=self.config.grid_minutes,
            max_iterations=self.config.max_iterations,
        )


def task_duration_minutes(
    task: Task, pomodoro_minutes: int = 25, default_minutes: int = 60
) -> int:
    """Planned duration for a task: hour estimate, else pomodoros, else default."""
    if task.estimated_duration_hours and task.estimated_duration_hours > 0:
        return max(1, round(task.estimated_duration_hours * 60))
    if task.estimated_pomodoros and task.estimated_pomodoros > 0:
        return task.estimated_pomodoros * pomodoro_minutes
    return default_minutes

"""Timeline schema: time blocks, fixed-break rules, tasks, recurrence descriptors."""

import datetime as dt
from datetime import date, datetime, time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

BlockSource = Literal["manual", "task_plan", "fixed_break", "pomodoro_log", "time_log"]
Weekday = Literal[
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]
Frequency = Literal["daily", "workdays", "weekly", "monthly", "yearly"]
EndsType = Literal["never", "on_date", "after_occurrences"]
RangeToken = Literal["today", "week", "month", "all"]

WEEKDAYS: tuple[Weekday, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

NEXT_ACTION = "next_action"


class TimeBlock(BaseModel):
    """A concrete, dated occupation of time on the timeline.

    `date` is the calendar day the block is filed under. It defaults to the
    day of `start_time` and is not rewritten by later edits, so it can serve
    as the reconciliation key even when the start crosses local midnight.
    """

    id: str
    title: str
    task_id: Optional[str] = None
    source: BlockSource = "manual"
    start_time: datetime
    end_time: datetime
    date: Optional[dt.date] = None
    is_logged: bool = False
    fixed_break_rule_id: Optional[str] = None
    activity_category_id: Optional[str] = None
    created_at: Optional[datetime] = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_interval(self) -> "TimeBlock":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if self.date is None:
            self.date = self.start_time.date()
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class FixedBreakRule(BaseModel):
    """Weekly-recurring break template (wall-clock times, no date).

    Rules are user data and may be persisted with end <= start; the
    reconciler skips those instead of the model rejecting them.
    """

    id: str
    label: Optional[str] = None
    start_time: time
    end_time: time
    days_of_week: list[Weekday] = Field(default_factory=list)
    is_enabled: bool = True

    @property
    def is_valid(self) -> bool:
        return self.start_time < self.end_time and bool(self.days_of_week)


class Task(BaseModel):
    """Task record (the fields the timeline engine reads)."""

    id: str
    title: str
    category: str = NEXT_ACTION
    completed: bool = False
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    planned_date: Optional[datetime] = None
    is_recurring: bool = False
    recurrence_rule: Optional[str] = None  # Encoded RecurrenceDescriptor
    recurrence_end_date: Optional[datetime] = None
    recurrence_count: Optional[int] = None
    estimated_duration_hours: Optional[float] = None
    estimated_pomodoros: Optional[int] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


class RecurrenceDescriptor(BaseModel):
    """Logical (frequency, anchor, end policy) triple of a repeating task.

    Field aliases match the JSON keys stored in the task table, so
    `model_dump_json(by_alias=True)` is the persisted encoding.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    frequency: Frequency
    anchor: date = Field(alias="startDate")
    ends: EndsType = Field(default="never", alias="endsType")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    occurrences: Optional[int] = Field(default=None, alias="occurrences")

    @model_validator(mode="after")
    def _check_end_policy(self) -> "RecurrenceDescriptor":
        if self.ends == "on_date" and self.end_date is None:
            raise ValueError("endsType 'on_date' requires endDate")
        if self.ends == "after_occurrences" and (
            self.occurrences is None or self.occurrences < 1
        ):
            raise ValueError("endsType 'after_occurrences' requires occurrences >= 1")
        return self

"""Domain models."""

from .timeline import (
    NEXT_ACTION,
    WEEKDAYS,
    BlockSource,
    EndsType,
    FixedBreakRule,
    Frequency,
    RangeToken,
    RecurrenceDescriptor,
    Task,
    TimeBlock,
    Weekday,
)

__all__ = [
    "NEXT_ACTION",
    "WEEKDAYS",
    "BlockSource",
    "EndsType",
    "FixedBreakRule",
    "Frequency",
    "RangeToken",
    "RecurrenceDescriptor",
    "Task",
    "TimeBlock",
    "Weekday",
]

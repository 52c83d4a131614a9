"""Application logic layer.

`Engine` lives in `tempo.core.engine`; it is not re-exported here because the
database layer imports `tempo.core.errors`.
"""

from .errors import InvalidRule, NoSlotAvailable, ParseError, StoreIOError, TimelineError
from .fixed_breaks import ReconcilePlan, detach_if_modified, materialize, reconcile
from .intervals import overlaps
from .recurrence import (
    decode,
    describe,
    encode,
    expand,
    next_occurrence,
    occurs_in_range,
    task_occurs_in_range,
    task_recurrence,
    upcoming,
)
from .slots import SlotConfig, SlotFinder, find_slot, task_duration_minutes
from .stats import TaskStats, aggregate, is_in_range, resolve_range

__all__ = [
    "InvalidRule",
    "NoSlotAvailable",
    "ParseError",
    "StoreIOError",
    "TimelineError",
    "ReconcilePlan",
    "detach_if_modified",
    "materialize",
    "reconcile",
    "overlaps",
    "decode",
    "describe",
    "encode",
    "expand",
    "next_occurrence",
    "occurs_in_range",
    "task_occurs_in_range",
    "task_recurrence",
    "upcoming",
    "SlotConfig",
    "SlotFinder",
    "find_slot",
    "task_duration_minutes",
    "TaskStats",
    "aggregate",
    "is_in_range",
    "resolve_range",
]

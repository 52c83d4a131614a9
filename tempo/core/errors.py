"""Error taxonomy for the timeline engine."""

from typing import Optional


class TimelineError(Exception):
    """Base class for timeline engine errors."""


class NoSlotAvailable(TimelineError):
    """No conflict-free interval fits the requested duration on the day."""

    def __init__(self, duration_minutes: int, reason: str) -> None:
        self.duration_minutes = duration_minutes
        self.reason = reason
        super().__init__(f"No {duration_minutes}-minute slot available: {reason}")


class ParseError(TimelineError, ValueError):
    """Malformed recurrence descriptor."""


class StoreIOError(TimelineError):
    """Underlying record store read/write failure."""


class InvalidRule(TimelineError, ValueError):
    """A fixed-break rule that cannot produce a valid block."""

    def __init__(self, message: str, rule_id: Optional[str] = None) -> None:
        self.rule_id = rule_id
        super().__init__(message)

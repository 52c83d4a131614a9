"""Interval conflict test shared by slot search and break reconciliation."""

from datetime import datetime, timedelta


def overlaps(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
    buffer_minutes: int = 0,
) -> bool:
    """Return True if interval A conflicts with interval B.

    B is inflated by `buffer_minutes` on both sides before the test, so two
    intervals closer than the buffer conflict even if they do not touch.
    A buffer of 0 is an exact half-open overlap test.
    """
    gap = timedelta(minutes=buffer_minutes)
    return start_a < end_b + gap and end_a + gap > start_b

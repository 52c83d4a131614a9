"""Utilities for parsing day and time input from the command line."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional

_RELATIVE_DAYS = {"yesterday": -1, "today": 0, "tomorrow": 1}


def parse_day(raw: str, now: Optional[datetime] = None) -> Optional[date]:
    """Parse a day: yesterday, today, tomorrow, or YYYY-MM-DD."""
    value = raw.strip().lower()
    current = now or datetime.now()
    if value in _RELATIVE_DAYS:
        return current.date() + timedelta(days=_RELATIVE_DAYS[value])
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_clock(raw: str) -> Optional[time]:
    """Parse a wall-clock HH:MM value."""
    try:
        return datetime.strptime(raw.strip(), "%H:%M").time()
    except ValueError:
        return None


def parse_when(raw: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a moment into a local datetime.

    Accepted values:
    - HH:MM (today)
    - YYYY-MM-DD (midnight)
    - YYYY-MM-DD HH:MM
    """
    value = raw.strip()
    current = now or datetime.now()

    clock = parse_clock(value)
    if clock is not None:
        return datetime.combine(current.date(), clock)

    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def to_local(moment: Optional[datetime]) -> Optional[datetime]:
    """Naive local time for an aware datetime; naive values pass through."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)

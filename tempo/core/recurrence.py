"""Recurrence descriptors: encoding, decoding and occurrence evaluation.

Occurrences are whole calendar days counted from the descriptor's anchor:

- daily: every day
- workdays: Monday to Friday
- weekly: the anchor's weekday
- monthly: the anchor's day-of-month; months without that day are skipped
- yearly: the anchor's month and day (Feb 29 anchors only hit leap years)

The end policy caps the sequence: `on_date` stops after the end of the end
date, `after_occurrences` stops after N occurrences counted from the anchor,
however wide the queried range is.

Evaluation is built on `dateutil.rrule`; a fresh rule object is created for
every call so results never depend on earlier queries.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time
from typing import Optional, Union

from dateutil.parser import isoparse
from dateutil.rrule import DAILY, FR, MO, MONTHLY, TH, TU, WE, WEEKLY, YEARLY, rrule
from pydantic import ValidationError

from tempo.core.date_utils import to_local
from tempo.core.errors import ParseError
from tempo.models import RecurrenceDescriptor, Task

logger = logging.getLogger(__name__)

DayLike = Union[date, datetime]

_RRULE_FREQUENCIES = {
    "daily": DAILY,
    "workdays": DAILY,
    "weekly": WEEKLY,
    "monthly": MONTHLY,
    "yearly": YEARLY,
}
_WORKDAYS = (MO, TU, WE, TH, FR)
_WORKDAY_CODES = {"MO", "TU", "WE", "TH", "FR"}
_END_OF_DAY = time(23, 59, 59)


def _as_day(value: DayLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _coerce_day(raw: object) -> object:
    """Normalize a persisted date value (date or ISO timestamp) to a local day.

    Offset-aware timestamps (e.g. ``2026-03-01T16:00:00.000Z``) are converted
    to local time first so the stored instant maps to the user's calendar day.
    Anything unparsable is returned untouched for model validation to reject.
    """
    if not isinstance(raw, str) or len(raw) <= 10:
        return raw
    try:
        parsed = isoparse(raw)
    except (ValueError, OverflowError):
        return raw
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


# ---- Encoding ----


def encode(descriptor: RecurrenceDescriptor) -> str:
    """Serialize a descriptor to the JSON string stored on the task."""
    return descriptor.model_dump_json(by_alias=True, exclude_none=True)


def decode(text: Optional[str], anchor: Optional[date] = None) -> RecurrenceDescriptor:
    """Parse a stored recurrence string.

    Accepts the JSON encoding produced by `encode` and legacy RFC 5545 rule
    strings (``RRULE:FREQ=WEEKLY;COUNT=4``). `anchor` fills in the start date
    when the text carries none.

    Raises:
        ParseError: If the text is empty, malformed, uses an unsupported rule
            part, or has no anchor.
    """
    if text is None or not text.strip():
        raise ParseError("Empty recurrence rule")
    stripped = text.strip()
    if stripped.startswith("{"):
        return _decode_json(stripped, anchor)
    return _decode_rrule(stripped, anchor)


def _decode_json(text: str, anchor: Optional[date]) -> RecurrenceDescriptor:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid recurrence JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ParseError("Recurrence JSON must be an object")

    if payload.get("startDate") in (None, "") and anchor is not None:
        payload["startDate"] = anchor
    if payload.get("startDate") in (None, ""):
        raise ParseError("Recurrence rule has no anchor date")
    for key in ("startDate", "endDate"):
        if key in payload:
            payload[key] = _coerce_day(payload[key])
    if payload.get("endDate") is None:
        payload.pop("endDate", None)

    try:
        return RecurrenceDescriptor.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f"Invalid recurrence rule: {e}") from e


def _decode_rrule(text: str, anchor: Optional[date]) -> RecurrenceDescriptor:
    body = text[len("RRULE:"):] if text.upper().startswith("RRULE:") else text
    parts: dict[str, str] = {}
    for chunk in body.split(";"):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        if not sep:
            raise ParseError(f"Malformed rule part: {chunk!r}")
        parts[key.strip().upper()] = value.strip().upper()

    freq = parts.pop("FREQ", "").lower()
    if freq not in ("daily", "weekly", "monthly", "yearly"):
        raise ParseError(f"Unsupported frequency: {freq or '<missing>'}")
    if parts.pop("INTERVAL", "1") != "1":
        raise ParseError("Only INTERVAL=1 is supported")

    byday = parts.pop("BYDAY", None)
    if byday is not None:
        if freq in ("daily", "weekly") and set(byday.split(",")) == _WORKDAY_CODES:
            freq = "workdays"
        else:
            raise ParseError(f"Unsupported BYDAY: {byday}")

    fields: dict[str, object] = {"frequency": freq}
    count = parts.pop("COUNT", None)
    until = parts.pop("UNTIL", None)
    if parts:
        raise ParseError(f"Unsupported rule parts: {', '.join(sorted(parts))}")
    if count is not None and until is not None:
        raise ParseError("COUNT and UNTIL are mutually exclusive")
    if count is not None:
        if not count.isdigit():
            raise ParseError(f"Invalid COUNT: {count}")
        fields.update(ends="after_occurrences", occurrences=int(count))
    elif until is not None:
        end_date = _coerce_day(until)
        if not isinstance(end_date, date):
            try:
                end_date = isoparse(until).date()
            except (ValueError, OverflowError) as e:
                raise ParseError(f"Invalid UNTIL: {until}") from e
        fields.update(ends="on_date", end_date=end_date)

    if anchor is None:
        raise ParseError("RRULE string carries no anchor date")
    fields["anchor"] = anchor
    try:
        return RecurrenceDescriptor.model_validate(fields)
    except ValidationError as e:
        raise ParseError(f"Invalid recurrence rule: {e}") from e


# ---- Evaluation ----


def _build_rule(descriptor: RecurrenceDescriptor) -> rrule:
    kwargs: dict = {"dtstart": datetime.combine(descriptor.anchor, time.min)}
    if descriptor.frequency == "workdays":
        kwargs["byweekday"] = _WORKDAYS
    if descriptor.ends == "on_date" and descriptor.end_date is not None:
        kwargs["until"] = datetime.combine(descriptor.end_date, _END_OF_DAY)
    elif descriptor.ends == "after_occurrences":
        kwargs["count"] = descriptor.occurrences
    return rrule(_RRULE_FREQUENCIES[descriptor.frequency], **kwargs)


def expand(
    descriptor: RecurrenceDescriptor, range_start: DayLike, range_end: DayLike
) -> list[date]:
    """Return every occurrence day within [range_start, range_end] (inclusive)."""
    start = datetime.combine(_as_day(range_start), time.min)
    end = datetime.combine(_as_day(range_end), time.min)
    if end < start:
        return []
    return [moment.date() for moment in _build_rule(descriptor).between(start, end, inc=True)]


def occurs_in_range(
    rule: Union[RecurrenceDescriptor, str, None],
    range_start: Optional[DayLike],
    range_end: Optional[DayLike],
    anchor: Optional[date] = None,
) -> bool:
    """Return True if the capped occurrence sequence intersects the range.

    Either bound may be None (unbounded). A rule that fails to decode yields
    False for every range; the failure is logged, never raised.
    """
    if rule is None:
        return False
    if isinstance(rule, str):
        try:
            descriptor = decode(rule, anchor=anchor)
        except ParseError as e:
            logger.warning("Ignoring unparsable recurrence rule %r: %s", rule, e)
            return False
    else:
        descriptor = rule

    lower = (
        datetime.combine(_as_day(range_start), time.min)
        if range_start is not None
        else datetime.min
    )
    first = _build_rule(descriptor).after(lower, inc=True)
    if first is None:
        return False
    return range_end is None or first.date() <= _as_day(range_end)


def next_occurrence(descriptor: RecurrenceDescriptor, after: DayLike) -> Optional[date]:
    """First occurrence strictly after the given day, or None if finished."""
    moment = _build_rule(descriptor).after(
        datetime.combine(_as_day(after), time.min), inc=False
    )
    return moment.date() if moment else None


def upcoming(
    descriptor: RecurrenceDescriptor,
    count: int = 10,
    start_from: Optional[DayLike] = None,
) -> list[date]:
    """Up to `count` occurrences on or after `start_from` (default: today)."""
    start = datetime.combine(_as_day(start_from or date.today()), time.min)
    return [
        moment.date()
        for moment in _build_rule(descriptor).xafter(start, count=count, inc=True)
    ]


def describe(descriptor: RecurrenceDescriptor) -> str:
    """Human-readable summary, e.g. 'Every week on Wednesday from 2026-01-07'."""
    anchor = descriptor.anchor
    start = anchor.isoformat()
    if descriptor.frequency == "daily":
        text = f"Every day from {start}"
    elif descriptor.frequency == "workdays":
        text = f"Every workday (Monday to Friday) from {start}"
    elif descriptor.frequency == "weekly":
        text = f"Every week on {anchor.strftime('%A')} from {start}"
    elif descriptor.frequency == "monthly":
        text = f"Every month on day {anchor.day} from {start}"
    else:
        text = f"Every year on {anchor.strftime('%B')} {anchor.day} from {start}"

    if descriptor.ends == "on_date" and descriptor.end_date:
        text += f", until {descriptor.end_date.isoformat()}"
    elif descriptor.ends == "after_occurrences":
        suffix = "time" if descriptor.occurrences == 1 else "times"
        text += f", {descriptor.occurrences} {suffix}"
    return text


# ---- Task adapter ----


def task_recurrence(task: Task) -> Optional[RecurrenceDescriptor]:
    """Effective recurrence of a task, anchored on its planned date.

    Returns None for non-recurring tasks and for tasks without a rule or a
    planned date. Task-level end fields apply only when the rule itself has
    no end policy.

    Raises:
        ParseError: If the stored rule cannot be decoded.
    """
    if not task.is_recurring or not task.recurrence_rule or task.planned_date is None:
        return None
    anchor = to_local(task.planned_date).date()
    descriptor = decode(task.recurrence_rule, anchor=anchor)
    updates: dict = {"anchor": anchor}
    if descriptor.ends == "never":
        if task.recurrence_count:
            updates.update(ends="after_occurrences", occurrences=task.recurrence_count)
        elif task.recurrence_end_date is not None:
            updates.update(ends="on_date", end_date=to_local(task.recurrence_end_date).date())
    return descriptor.model_copy(update=updates)


def task_occurs_in_range(
    task: Task, range_start: Optional[DayLike], range_end: Optional[DayLike]
) -> bool:
    """`occurs_in_range` for a task; malformed or anchorless rules yield False."""
    try:
        descriptor = task_recurrence(task)
    except ParseError as e:
        logger.warning("Task %s has an unparsable recurrence rule: %s", task.id, e)
        return False
    if descriptor is None:
        return False
    return occurs_in_range(descriptor, range_start, range_end)

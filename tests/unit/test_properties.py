"""Property-based tests for the timeline invariants."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from tempo.core.errors import NoSlotAvailable
from tempo.core.fixed_breaks import reconcile
from tempo.core.intervals import overlaps
from tempo.core.recurrence import decode, encode, occurs_in_range
from tempo.core.slots import find_slot, round_up_to_grid
from tempo.models import WEEKDAYS, FixedBreakRule, RecurrenceDescriptor, TimeBlock

BASE = datetime(2026, 3, 4)
DAY_START = BASE + timedelta(hours=7)
DAY_END = BASE + timedelta(hours=22)

minutes = st.integers(min_value=0, max_value=24 * 60)
lengths = st.integers(min_value=1, max_value=240)
buffers = st.integers(min_value=0, max_value=30)


def _interval(offset: int, length: int) -> tuple[datetime, datetime]:
    start = BASE + timedelta(minutes=offset)
    return start, start + timedelta(minutes=length)


@given(minutes, lengths, minutes, lengths, buffers)
def test_overlap_is_symmetric(a_off: int, a_len: int, b_off: int, b_len: int, gap: int) -> None:
    a_start, a_end = _interval(a_off, a_len)
    b_start, b_end = _interval(b_off, b_len)
    assert overlaps(a_start, a_end, b_start, b_end, gap) == overlaps(
        b_start, b_end, a_start, a_end, gap
    )


blocks_strategy = st.lists(
    st.tuples(st.integers(min_value=6 * 60, max_value=22 * 60), lengths),
    max_size=12,
)


def _slot_outcome(
    blocks: list[TimeBlock], duration: int, gap: int, anchor: datetime
) -> Optional[tuple[datetime, datetime]]:
    """The slot found, or None when the day has no room."""
    try:
        return find_slot(blocks, duration, DAY_START, DAY_END, gap, anchor)
    except NoSlotAvailable:
        return None


@settings(max_examples=200)
@given(
    blocks_strategy,
    st.integers(min_value=5, max_value=180),
    st.integers(min_value=7 * 60, max_value=21 * 60),
    buffers,
)
def test_found_slot_is_free_inside_day_and_repeatable(
    raw_blocks: list[tuple[int, int]], duration: int, anchor_off: int, gap: int
) -> None:
    blocks = sorted(
        (
            TimeBlock(id=f"b{i}", title="b", start_time=start, end_time=end)
            for i, (start, end) in enumerate(_interval(o, n) for o, n in raw_blocks)
        ),
        key=lambda b: b.start_time,
    )
    anchor = round_up_to_grid(BASE + timedelta(minutes=anchor_off))
    first, second = (
        _slot_outcome(blocks, duration, gap, anchor),
        _slot_outcome(blocks, duration, gap, anchor),
    )
    assert first == second
    if first is None:
        return
    start, end = first
    assert end - start == timedelta(minutes=duration)
    assert DAY_START <= anchor <= start
    assert end <= DAY_END
    assert start.minute % 5 == 0
    for block in blocks:
        assert not overlaps(start, end, block.start_time, block.end_time, gap)


descriptors = st.builds(
    RecurrenceDescriptor,
    frequency=st.sampled_from(["daily", "workdays", "weekly", "monthly", "yearly"]),
    anchor=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)),
) | st.builds(
    RecurrenceDescriptor,
    frequency=st.sampled_from(["daily", "workdays", "weekly", "monthly", "yearly"]),
    anchor=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)),
    ends=st.just("on_date"),
    end_date=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)),
) | st.builds(
    RecurrenceDescriptor,
    frequency=st.sampled_from(["daily", "workdays", "weekly", "monthly", "yearly"]),
    anchor=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)),
    ends=st.just("after_occurrences"),
    occurrences=st.integers(min_value=1, max_value=1000),
)


@given(descriptors)
def test_decode_inverts_encode(descriptor: RecurrenceDescriptor) -> None:
    assert decode(encode(descriptor)) == descriptor


@given(
    st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
    st.integers(min_value=-30, max_value=400),
)
def test_weekly_rule_hits_only_its_weekday(anchor: date, offset: int) -> None:
    rule = RecurrenceDescriptor(frequency="weekly", anchor=anchor)
    day = anchor + timedelta(days=offset)
    expected = day >= anchor and day.weekday() == anchor.weekday()
    assert occurs_in_range(rule, day, day) == expected


def _break_rule(
    index: int, start: int, length: int, days: list[str], enabled: bool
) -> FixedBreakRule:
    end = min(max(start + length, 0), 24 * 60 - 1)
    return FixedBreakRule(
        id=f"r{index}",
        start_time=time(start // 60, start % 60),
        end_time=time(end // 60, end % 60),
        days_of_week=days,
        is_enabled=enabled,
    )


rules_strategy = st.lists(
    st.builds(
        _break_rule,
        st.integers(min_value=0, max_value=1000),
        st.integers(min_value=0, max_value=23 * 60),
        st.integers(min_value=-30, max_value=120),
        st.lists(st.sampled_from(WEEKDAYS), min_size=1, max_size=7, unique=True),
        st.booleans(),
    ),
    max_size=6,
    unique_by=lambda r: r.id,
)


@given(rules_strategy, st.dates(min_value=date(2026, 1, 1), max_value=date(2026, 12, 31)))
def test_reconcile_is_idempotent(rules: list[FixedBreakRule], day: date) -> None:
    first = reconcile(day, rules, [])
    second = reconcile(day, rules, first.to_create)
    assert second.to_create == []
    assert second.to_remove == []

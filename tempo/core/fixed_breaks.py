"""Fixed-break reconciliation: materialize today's breaks, retire orphans."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from tempo.core.errors import InvalidRule
from tempo.core.intervals import overlaps
from tempo.models import WEEKDAYS, FixedBreakRule, TimeBlock, Weekday

logger = logging.getLogger(__name__)

DEFAULT_BREAK_TITLE = "Fixed break"


def weekday_token(day: date) -> Weekday:
    """Lowercase English weekday name used in rule.days_of_week."""
    return WEEKDAYS[day.weekday()]


def day_window(day: date) -> tuple[datetime, datetime]:
    """[00:00 of day, 00:00 of the next day)."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def materialize(
    rule: FixedBreakRule, day: date, default_title: str = DEFAULT_BREAK_TITLE
) -> TimeBlock:
    """Concrete break block for `rule` on `day`.

    Raises:
        InvalidRule: If the rule's end time is not after its start time.
    """
    start = datetime.combine(day, rule.start_time)
    end = datetime.combine(day, rule.end_time)
    if end <= start:
        raise InvalidRule(
            f"Fixed break rule {rule.label or rule.id} ends before it starts "
            f"({rule.start_time:%H:%M}-{rule.end_time:%H:%M})",
            rule_id=rule.id,
        )
    return TimeBlock(
        id=str(uuid.uuid4()),
        title=rule.label or default_title,
        source="fixed_break",
        start_time=start,
        end_time=end,
        date=day,
        fixed_break_rule_id=rule.id,
    )


@dataclass
class ReconcilePlan:
    """Blocks to create and block ids to delete for one reconciliation pass."""

    to_create: list[TimeBlock] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_create and not self.to_remove


def reconcile(
    today: date,
    enabled_rules: Iterable[FixedBreakRule],
    candidate_blocks: Iterable[TimeBlock],
    default_title: str = DEFAULT_BREAK_TITLE,
) -> ReconcilePlan:
    """Plan the writes that bring today's fixed breaks in line with the rules.

    `candidate_blocks` should cover yesterday, today and tomorrow: a block's
    filed date and its start timestamp can disagree around midnight, so
    membership in today is judged on timestamps only.

    A rule is already materialized when a fixed-break block with its id
    starts within today. Orphans are fixed-break blocks whose rule id is not
    among the enabled rules and whose interval touches today.
    """
    window_start, window_end = day_window(today)
    token = weekday_token(today)
    rules = [rule for rule in enabled_rules if rule.is_enabled]
    enabled_ids = {rule.id for rule in rules}
    fixed_blocks = [b for b in candidate_blocks if b.source == "fixed_break"]

    materialized = {
        b.fixed_break_rule_id
        for b in fixed_blocks
        if b.fixed_break_rule_id and window_start <= b.start_time < window_end
    }

    plan = ReconcilePlan()
    queued: set[str] = set()
    for rule in rules:
        if token not in rule.days_of_week:
            continue
        if rule.id in materialized or rule.id in queued:
            continue
        try:
            block = materialize(rule, today, default_title)
        except InvalidRule as e:
            logger.warning("Skipping fixed break rule %s: %s", rule.id, e)
            continue
        plan.to_create.append(block)
        queued.add(rule.id)

    seen: set[str] = set()
    for block in fixed_blocks:
        if block.fixed_break_rule_id in enabled_ids or block.id in seen:
            continue
        if overlaps(block.start_time, block.end_time, window_start, window_end):
            logger.info(
                "Orphaned fixed break block %s (rule %s, %r) scheduled for removal",
                block.id,
                block.fixed_break_rule_id,
                block.title,
            )
            plan.to_remove.append(block.id)
            seen.add(block.id)
    return plan


def detach_if_modified(
    block: TimeBlock,
    rule: Optional[FixedBreakRule],
    default_title: str = DEFAULT_BREAK_TITLE,
) -> TimeBlock:
    """Turn an edited fixed-break block into a plain manual block.

    A block stays linked only while its source, title and HH:MM times still
    match its rule. Once it diverges (or the rule is gone) the rule link is
    dropped so reconciliation neither removes it as an orphan nor treats it
    as the rule's materialization.
    """
    if block.fixed_break_rule_id is None:
        return block
    unchanged = (
        rule is not None
        and rule.id == block.fixed_break_rule_id
        and block.source == "fixed_break"
        and block.title == (rule.label or default_title)
        and block.start_time.strftime("%H:%M") == rule.start_time.strftime("%H:%M")
        and block.end_time.strftime("%H:%M") == rule.end_time.strftime("%H:%M")
    )
    if unchanged:
        return block
    logger.info("Fixed break block %s was edited; detaching from its rule", block.id)
    source = "manual" if block.source == "fixed_break" else block.source
    return block.model_copy(update={"fixed_break_rule_id": None, "source": source})

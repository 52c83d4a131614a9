"""Main workflow: plan tasks onto the timeline, keep fixed breaks in sync, report stats."""

import asyncio
import logging
import uuid
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Optional

from tempo.config import Settings, get_settings
from tempo.core.errors import InvalidRule, StoreIOError
from tempo.core.fixed_breaks import ReconcilePlan, detach_if_modified, reconcile
from tempo.core.guard import SingleFlight
from tempo.core.notify import ChangeNotifier
from tempo.core.recurrence import encode
from tempo.core.slots import SlotConfig, SlotFinder, task_duration_minutes
from tempo.core.stats import TaskStats, aggregate, is_in_range, resolve_range
from tempo.database.sqlite import SqliteDB
from tempo.database.store import TimelineStore
from tempo.models import (
    NEXT_ACTION,
    BlockSource,
    FixedBreakRule,
    RangeToken,
    RecurrenceDescriptor,
    Task,
    TimeBlock,
    Weekday,
)

logger = logging.getLogger(__name__)


class Engine:
    """Orchestrates slot placement, break reconciliation and stats. Depends on Config + DB.

    Every successful block create/update/delete emits on `notifier` so views
    can re-read the timeline.

    `store` replaces the SQLite database at `db_path` (or settings.db_path).
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[ChangeNotifier] = None,
        store: Optional[TimelineStore] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db_path = db_path or self._settings.db_path
        self._db: TimelineStore = store or SqliteDB(self._db_path)
        self._db.init_db()
        self._slot_finder = SlotFinder(SlotConfig.from_settings(self._settings))
        self._reconcile_guard = SingleFlight()
        self.notifier = notifier or ChangeNotifier()

    # ---- Tasks ----

    def add_task(
        self,
        title: str,
        category: str = NEXT_ACTION,
        due_date: Optional[datetime] = None,
        planned_date: Optional[datetime] = None,
        recurrence: Optional[RecurrenceDescriptor] = None,
        estimated_duration_hours: Optional[float] = None,
        estimated_pomodoros: Optional[int] = None,
    ) -> Task:
        """Create and persist a task.

        A recurrence descriptor makes the task recurring; its anchor doubles
        as the planned date when none is given.

        Raises:
            ValueError: If title is empty or whitespace-only.
        """
        if not title or not title.strip():
            raise ValueError("Title cannot be empty")
        if recurrence is not None and planned_date is None:
            planned_date = datetime.combine(recurrence.anchor, time.min)
        task = Task(
            id=str(uuid.uuid4()),
            title=title.strip(),
            category=category,
            due_date=due_date,
            planned_date=planned_date,
            is_recurring=recurrence is not None,
            recurrence_rule=encode(recurrence) if recurrence is not None else None,
            estimated_duration_hours=estimated_duration_hours,
            estimated_pomodoros=estimated_pomodoros,
        )
        self._db.insert_task(task)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        """Return one task by id."""
        return self._db.get_task(task_id)

    def list_tasks(self) -> list[Task]:
        """Return tasks that are not soft-deleted."""
        return self._db.list_tasks()

    def complete_task(self, task_id: str, now: Optional[datetime] = None) -> Optional[Task]:
        """Mark a task completed (stamps completed_at)."""
        task = self._db.get_task(task_id)
        if not task:
            return None
        moment = now or datetime.now()
        updated = task.model_copy(
            update={"completed": True, "completed_at": moment, "updated_at": moment}
        )
        self._db.update_task(updated)
        return updated

    def delete_task(self, task_id: str) -> None:
        """Soft-delete a task (kept in the store, hidden from stats)."""
        task = self._db.get_task(task_id)
        if task:
            self._db.update_task(
                task.model_copy(update={"is_deleted": True, "updated_at": datetime.now()})
            )

    # ---- Time blocks ----

    def list_blocks(self, day: date) -> list[TimeBlock]:
        """Blocks filed under `day`, ordered by start time."""
        return self._db.list_blocks(day)

    def get_block(self, block_id: str) -> Optional[TimeBlock]:
        return self._db.get_block(block_id)

    def find_block_id(self, prefix: str) -> Optional[str]:
        """Resolve a full id or a unique id prefix (as shown in listings)."""
        if self._db.get_block(prefix):
            return prefix
        matches = self._db.find_block_ids(prefix)
        return matches[0] if len(matches) == 1 else None

    def add_block(
        self,
        title: str,
        start_time: datetime,
        end_time: datetime,
        source: BlockSource = "manual",
        task_id: Optional[str] = None,
        is_logged: bool = False,
    ) -> TimeBlock:
        """Create a block (filed under its start day) and notify listeners."""
        block = TimeBlock(
            id=str(uuid.uuid4()),
            title=title.strip(),
            task_id=task_id,
            source=source,
            start_time=start_time,
            end_time=end_time,
            is_logged=is_logged,
        )
        self._db.insert_block(block)
        self.notifier.emit()
        return block

    def update_block(self, block: TimeBlock) -> TimeBlock:
        """Persist an edited block.

        Fixed-break blocks that no longer match their rule are detached into
        plain manual blocks first. The filed date is left as is.
        """
        if block.fixed_break_rule_id is not None:
            rule = self._db.get_rule(block.fixed_break_rule_id)
            block = detach_if_modified(block, rule, self._settings.fixed_break_title)
        block = block.model_copy(update={"updated_at": datetime.now()})
        self._db.update_block(block)
        self.notifier.emit()
        return block

    def reschedule_block(self, block_id: str, new_start: datetime) -> TimeBlock:
        """Move a block to `new_start`, keeping its duration.

        A move is an explicit re-filing, so the block's date follows the new
        start.

        Raises:
            ValueError: If the block does not exist.
        """
        block = self._db.get_block(block_id)
        if not block:
            raise ValueError(f"Block with id '{block_id}' not found")
        moved = block.model_copy(
            update={
                "start_time": new_start,
                "end_time": new_start + (block.end_time - block.start_time),
                "date": new_start.date(),
            }
        )
        return self.update_block(moved)

    def delete_block(self, block_id: str) -> None:
        """Delete a block and notify listeners."""
        self._db.delete_block(block_id)
        self.notifier.emit()

    # ---- Slot placement ----

    def task_duration(self, task: Task) -> int:
        """Minutes to reserve for a task on the timeline."""
        return task_duration_minutes(
            task,
            pomodoro_minutes=self._settings.pomodoro_minutes,
            default_minutes=self._settings.default_task_minutes,
        )

    def find_slot_for_task(
        self, task: Task, now: Optional[datetime] = None
    ) -> tuple[datetime, datetime]:
        """Next free slot today for the task, against the current block snapshot.

        Raises:
            NoSlotAvailable: If today has no room left.
        """
        now = now or datetime.now()
        blocks = self._db.list_blocks(now.date())
        return self._slot_finder.find(blocks, self.task_duration(task), now.date(), now)

    def schedule_task(self, task_id: str, now: Optional[datetime] = None) -> TimeBlock:
        """Place a task on today's timeline in the next free slot.

        Raises:
            ValueError: If the task does not exist or is already completed.
            NoSlotAvailable: If today has no room left.
        """
        task = self._db.get_task(task_id)
        if not task:
            raise ValueError(f"Task with id '{task_id}' not found")
        if task.completed:
            raise ValueError(f"Task '{task.title}' is already completed")

        start, end = self.find_slot_for_task(task, now=now)
        block = TimeBlock(
            id=str(uuid.uuid4()),
            title=task.title,
            task_id=task.id,
            source="task_plan",
            start_time=start,
            end_time=end,
        )
        self._db.insert_block(block)
        logger.info(
            "Scheduled task %s at %s-%s", task.id, start.strftime("%H:%M"), end.strftime("%H:%M")
        )
        self.notifier.emit()
        return block

    # ---- Fixed-break rules ----

    def add_rule(
        self,
        start_time: time,
        end_time: time,
        days_of_week: list[Weekday],
        label: Optional[str] = None,
    ) -> FixedBreakRule:
        """Create an enabled fixed-break rule.

        Raises:
            InvalidRule: If end is not after start or no weekday is given.
        """
        rule = FixedBreakRule(
            id=str(uuid.uuid4()),
            label=label.strip() if label and label.strip() else None,
            start_time=start_time,
            end_time=end_time,
            days_of_week=list(dict.fromkeys(days_of_week)),
        )
        if rule.end_time <= rule.start_time:
            raise InvalidRule("Break must end after it starts")
        if not rule.days_of_week:
            raise InvalidRule("Break needs at least one weekday")
        self._db.insert_rule(rule)
        return rule

    def list_rules(self) -> list[FixedBreakRule]:
        return self._db.list_rules()

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> Optional[FixedBreakRule]:
        """Enable or disable a rule; returns the updated rule or None."""
        rule = self._db.get_rule(rule_id)
        if not rule:
            return None
        updated = rule.model_copy(update={"is_enabled": enabled})
        self._db.update_rule(updated)
        return updated

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule. Its blocks are retired by the next reconciliation."""
        self._db.delete_rule(rule_id)

    # ---- Fixed-break reconciliation ----

    def reconcile_fixed_breaks(self, day: Optional[date] = None) -> Optional[ReconcilePlan]:
        """Materialize missing breaks for `day` and remove orphaned ones.

        Runs for the same day never overlap: a call made while another is in
        flight is dropped and returns None.

        Returns:
            The writes that succeeded, or None if the call was dropped.

        Raises:
            StoreIOError: If rules or candidate blocks cannot be read.
        """
        day = day or date.today()
        with self._reconcile_guard.claim(day.isoformat()) as owner:
            if not owner:
                logger.warning(
                    "Fixed break reconciliation for %s already running; skipping", day
                )
                return None
            return self._reconcile(day)

    async def reconcile_fixed_breaks_async(
        self, day: Optional[date] = None
    ) -> Optional[ReconcilePlan]:
        """`reconcile_fixed_breaks` in a worker thread for asyncio callers."""
        return await asyncio.to_thread(self.reconcile_fixed_breaks, day)

    def _reconcile(self, day: date) -> ReconcilePlan:
        rules = [rule for rule in self._db.list_rules() if rule.is_enabled]
        candidates = self._db.list_blocks_between(
            day - timedelta(days=1), day + timedelta(days=1)
        )
        plan = reconcile(day, rules, candidates, self._settings.fixed_break_title)

        applied = ReconcilePlan()
        for block in plan.to_create:
            try:
                self._db.insert_block(block)
                applied.to_create.append(block)
            except StoreIOError as e:
                logger.error("Failed to add fixed break %r: %s", block.title, e)
        for block_id in plan.to_remove:
            try:
                self._db.delete_block(block_id)
                applied.to_remove.append(block_id)
            except StoreIOError as e:
                logger.error("Failed to remove orphaned block %s: %s", block_id, e)

        if not applied.is_empty:
            logger.info(
                "Reconciled fixed breaks for %s: %d added, %d removed",
                day,
                len(applied.to_create),
                len(applied.to_remove),
            )
            self.notifier.emit()
        return applied

    def today_timeline(self, day: Optional[date] = None) -> list[TimeBlock]:
        """Reconcile fixed breaks, then return the day's blocks."""
        day = day or date.today()
        self.reconcile_fixed_breaks(day)
        return self._db.list_blocks(day)

    # ---- Statistics ----

    def task_stats(
        self, range_token: RangeToken = "today", now: Optional[datetime] = None
    ) -> TaskStats:
        """Statistics over non-deleted tasks for a range token."""
        return aggregate(self._db.list_tasks(), range_token, now)

    def tasks_in_range(
        self, range_token: RangeToken = "today", now: Optional[datetime] = None
    ) -> list[Task]:
        """The tasks behind `task_stats(range_token).total`."""
        now = now or datetime.now()
        start, end = resolve_range(range_token, now)
        return [t for t in self._db.list_tasks() if is_in_range(t, start, end, now)]

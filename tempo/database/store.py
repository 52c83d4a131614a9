"""Narrow store contracts the timeline engine depends on."""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from tempo.models import FixedBreakRule, Task, TimeBlock


class BlockStore(Protocol):
    """Time blocks, indexed by filed calendar date."""

    def list_blocks(self, day: date) -> list[TimeBlock]:
        ...

    def list_blocks_between(self, first: date, last: date) -> list[TimeBlock]:
        ...

    def get_block(self, block_id: str) -> Optional[TimeBlock]:
        ...

    def find_block_ids(self, prefix: str) -> list[str]:
        ...

    def insert_block(self, block: TimeBlock) -> str:
        ...

    def update_block(self, block: TimeBlock) -> None:
        ...

    def delete_block(self, block_id: str) -> None:
        ...


class RuleStore(Protocol):
    """Fixed-break rules."""

    def list_rules(self) -> list[FixedBreakRule]:
        ...

    def get_rule(self, rule_id: str) -> Optional[FixedBreakRule]:
        ...

    def insert_rule(self, rule: FixedBreakRule) -> str:
        ...

    def update_rule(self, rule: FixedBreakRule) -> None:
        ...

    def delete_rule(self, rule_id: str) -> None:
        ...


class TaskStore(Protocol):
    """Task records (soft-deleted rows excluded unless asked for)."""

    def list_tasks(self, include_deleted: bool = False) -> list[Task]:
        ...

    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    def insert_task(self, task: Task) -> str:
        ...

    def update_task(self, task: Task) -> None:
        ...


class TimelineStore(BlockStore, RuleStore, TaskStore, Protocol):
    """Everything `Engine` reads and writes. `SqliteDB` is the default."""

    def init_db(self) -> None:
        ...

"""Database layer - SQLite wrapper for time blocks, break rules, and tasks."""

from .sqlite import SqliteDB
from .store import BlockStore, RuleStore, TaskStore, TimelineStore

__all__ = ["BlockStore", "RuleStore", "SqliteDB", "TaskStore", "TimelineStore"]

"""Keyed single-flight guard: concurrent duplicates are dropped, not queued."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class SingleFlight:
    """Tracks which keys have a run in flight.

    Thread-safe, so it also holds for work pushed to threads with
    `asyncio.to_thread`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[Hashable] = set()

    def try_acquire(self, key: Hashable) -> bool:
        """Mark key in flight; False if a run for it is already active."""
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._in_flight.discard(key)

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[bool]:
        """Yield True if this caller owns the run for `key`, else False.

        Usage:
            with guard.claim(day.isoformat()) as owner:
                if not owner:
                    return None
                ...
        """
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

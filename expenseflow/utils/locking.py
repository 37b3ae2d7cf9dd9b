"""
Per-key locks.

Serializes work on the same key (an expense id) inside one process while
letting different keys proceed in parallel.  Entries are reference
counted and dropped once no thread holds or waits on them, so the
registry does not grow with the number of expenses ever decided.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator


class KeyedLock:
    """A registry of mutexes, one per key, created on demand."""

    def __init__(self) -> None:
        self._guard: threading.Lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refcounts: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        """Hold the lock for *key* for the duration of the ``with`` block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refcounts[key] = self._refcounts.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refcounts[key] -= 1
                if self._refcounts[key] == 0:
                    del self._refcounts[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

"""In-process locks serializing writers of the same balances."""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterable, Iterator


class EntityLockRegistry:
    """Per-entity locks for serializing balance writers in one process.

    Keys are always acquired in sorted order so two writers touching the same
    entities cannot deadlock.
    """

    def __init__(self):
        self._locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, keys: Iterable[Hashable]) -> Iterator[None]:
        """Hold the locks of all keys for the duration of the block."""
        ordered = sorted(set(keys), key=repr)
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

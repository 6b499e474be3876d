"""Per-owner serialization of read-compute-write sequences.

Every mutation of one user's tasks or profile runs under that user's lock, so
two concurrent completions of the same task cannot both score it and a
purchase cannot overwrite points written by a completion. Different users
never wait on each other.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class OwnerLocks:
    """Registry of one reentrant lock per owner id, created on first use.

    Entries are weak: a lock lives only while some caller holds or waits on
    it, so the registry does not grow with every owner ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, owner_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[owner_id] = lock
            return lock

    @contextmanager
    def hold(self, owner_id: str) -> Iterator[None]:
        lock = self._lock_for(owner_id)
        with lock:
            yield

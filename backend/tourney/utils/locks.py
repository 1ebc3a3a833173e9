"""
Process-local keyed locks.

Serializes read-check-write sequences on the same match (or the same team's
calendar) within a single process. Keys are acquired in sorted order so two
callers asking for overlapping key sets cannot deadlock. This does not provide
cross-process synchronization (e.g. several uvicorn workers).

A key's lock lives only while some caller holds or waits for it; the registry
drops it once the last user releases.
"""

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator, List, Optional


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = RLock()
        self.users = 0


class KeyedLocks:
    def __init__(self):
        self._guard = Lock()
        self._locks: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Optional[str]) -> Iterator[None]:
        """Hold every lock in ``keys`` (None entries are ignored)."""
        ordered = sorted({k for k in keys if k})
        checked_out: List[str] = []
        acquired: List[RLock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._checkin(key)


_match_locks: Optional[KeyedLocks] = None


def get_match_locks() -> KeyedLocks:
    """Get or create the singleton lock registry shared by all requests."""
    global _match_locks
    if _match_locks is None:
        _match_locks = KeyedLocks()
    return _match_locks

"""
Write serialization for timetable mutations.

Conflict check and insert/update for one (school, day) must not interleave with another
writer on the same key, otherwise both could pass the check and store a double-booking.
Within a process this is an asyncio.Lock per key; across processes the store adds a
PostgreSQL transaction-scoped advisory lock per key (see TimetableStore.lock_days).
"""

import asyncio
import hashlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Tuple
from uuid import UUID

LockKey = Tuple[UUID, str]


def advisory_lock_id(key: LockKey) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock."""
    school_id, day = key
    digest = hashlib.blake2b(f"timetable:{school_id}:{day}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def ordered_keys(keys: Iterable[LockKey]) -> List[LockKey]:
    """Deduplicated, in a global order so multi-day updates cannot deadlock."""
    return sorted(set(keys), key=lambda k: (str(k[0]), k[1]))


class ScheduleLocks:
    """Process-wide registry of per-(school, day) locks. One instance per application."""

    def __init__(self) -> None:
        self._locks: Dict[LockKey, asyncio.Lock] = {}

    def _lock_for(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def locked(self, key: LockKey) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, keys: Iterable[LockKey]) -> AsyncIterator[List[LockKey]]:
        acquired: List[asyncio.Lock] = []
        ordered = ordered_keys(keys)
        try:
            for key in ordered:
                lock = self._lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()

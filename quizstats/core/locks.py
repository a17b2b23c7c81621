# ============================================================================
# Per-key asyncio locks
# ============================================================================
"""
Process-local locks keyed by an identifier (user id).

Used to serialize statistics recomputation per user so two completions for the
same user do not interleave their read/replace cycles inside one worker.
They give no guarantee across processes: separate workers still follow
last-write-wins on the statistics row.

On the SQL path the lock covers the recompute and its flush, not the commit.
It is released before ``get_db`` (or the Celery task) commits, so two
completions for the same user in one process can still commit in either
order. The statistics row is then last-write-wins here too, and the next
recompute or stale refresh converges it.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

class KeyedLockRegistry:
    """Hands out one asyncio.Lock per key and forgets idle ones"""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

# Shared by every aggregator built inside this process
recompute_locks = KeyedLockRegistry()

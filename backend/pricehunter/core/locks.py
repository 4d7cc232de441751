"""Process-local keyed locks for serialising writes on the same logical key."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List
from weakref import WeakValueDictionary


class KeyedLock:
    """Hands out one asyncio.Lock per string key.

    Locks are held in a WeakValueDictionary so keys nobody is waiting on
    are released automatically. Several keys are always acquired in sorted
    order, which keeps two holders of overlapping key sets from deadlocking.
    """

    def __init__(self) -> None:
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def _get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire the locks for every key (deduplicated) for the block's duration."""
        locks: List[asyncio.Lock] = [self._get(k) for k in sorted(set(keys))]
        acquired: List[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        return len(self._locks)

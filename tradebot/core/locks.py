"""
Per-user locks.

Each user gets an asyncio.Lock while anyone holds or waits on it; the entry
is dropped as soon as the last holder leaves, so the map only ever contains
users with work in flight.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class UserLocks:
    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        lock = self._locks[user_id]
        # Counted before awaiting so a waiter keeps the entry alive
        self._refs[user_id] = self._refs.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[user_id] -= 1
            if not self._refs[user_id]:
                del self._refs[user_id]
                del self._locks[user_id]

    def locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

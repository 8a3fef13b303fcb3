"""Per-user serialisation of reconciliation runs."""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class RunInProgress(Exception):
    def __init__(self, user_id: int):
        super().__init__(f"A sync run is already in progress for user {user_id}")
        self.user_id = user_id


class UserSyncLocks:
    """One asyncio lock per user; a second run for the same user is refused, not queued."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def is_running(self, user_id: int) -> bool:
        return self._lock(user_id).locked()

    @asynccontextmanager
    async def hold(self, user_id: int):
        lock = self._lock(user_id)
        if lock.locked():
            raise RunInProgress(user_id)
        async with lock:
            yield

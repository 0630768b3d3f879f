"""
Per-user write serialization.

All mutations of a user's ledger run under that user's lock so concurrent
submissions are applied one at a time.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class UserLockRegistry:
    """
    asyncio locks keyed by user id.

    A lock exists only while someone holds or waits for it; the entry is
    dropped when the last user of it leaves.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if self._users[user_id] == 0:
                del self._users[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registry shared by all ledger writers
ledger_locks = UserLockRegistry()

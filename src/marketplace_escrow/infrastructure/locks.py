"""Per-subject async locks.

Every mutating operation on an order or submission (API call, sweeper
pass, dispute resolution) holds the subject's lock for the whole
check-and-set. Different subjects never wait on each other.

Usage:
    locks = SubjectLocks()
    async with locks.hold(order_id):
        ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class SubjectLocks:
    """One asyncio.Lock per subject id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, subject_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(subject_id, asyncio.Lock())
        self._users[subject_id] = self._users.get(subject_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[subject_id] -= 1
            if self._users[subject_id] == 0:
                del self._users[subject_id]
                del self._locks[subject_id]

    def __len__(self) -> int:
        return len(self._locks)

"""
Per-aggregate asyncio locks.

Serializes mutation of one aggregate (a work order, an equipment's downtime
ledger) within the process. Keys are ``(kind, tenant_id, id)`` tuples; a
lock lives only while some caller holds or awaits it.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

logger = logging.getLogger(__name__)

LockKey = tuple[str, str, str]


def lock_key(kind: str, tenant_id: str, entity_id: UUID | str) -> LockKey:
    return (kind, tenant_id, str(entity_id))


class AggregateLockRegistry:
    """Registry of named asyncio locks acquired in a global order."""

    def __init__(self) -> None:
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: LockKey) -> AsyncIterator[None]:
        """
        Hold the locks for all keys.

        Keys are sorted before acquisition so two callers asking for the same
        set of keys cannot deadlock.
        """
        ordered = sorted(set(keys))
        for key in ordered:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
                self._users[key] = 0
            self._users[key] += 1

        acquired: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._locks[key]
                if lock.locked():
                    logger.debug("Waiting for aggregate lock %s", key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def is_locked(self, key: LockKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

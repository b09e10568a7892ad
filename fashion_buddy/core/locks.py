"""
Per-key asyncio locks.

Events for the same user run one at a time; events for different users never
wait on each other. A key's lock is dropped once nobody holds or awaits it,
so the table only grows with concurrently active users.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.refs = 0


class KeyedLock:
    """Mutex keyed by an arbitrary string (here: the user's channel address)."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.refs += 1
        try:
            if entry.lock.locked():
                logger.debug("Waiting for lock on %s (%d queued)", key, entry.refs - 1)
            async with entry.lock:
                yield
        finally:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(key, None)

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.lock.locked())

    def __len__(self) -> int:
        return len(self._entries)

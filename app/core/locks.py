"""
Per-key mutual exclusion for entity tables.

Each owner address, transfer id, source hash or invoice id gets its own
``asyncio.Lock``; unrelated keys never contend. Locks are reference counted
and dropped once nobody holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict


@dataclass
class _LockEntry:
    lock: asyncio.Lock
    users: int = 0


class KeyedLocks:
    """A table of locks keyed by entity id."""

    def __init__(self, name: str = "entity") -> None:
        self.name = name
        self._entries: Dict[str, _LockEntry] = {}

    def _normalize(self, key: str) -> str:
        return key.lower()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Serialize everything done inside the block for ``key``."""
        normalized = self._normalize(key)
        entry = self._entries.get(normalized)
        if entry is None:
            entry = _LockEntry(lock=asyncio.Lock())
            self._entries[normalized] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(normalized) is entry:
                del self._entries[normalized]

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(self._normalize(key))
        return bool(entry and entry.lock.locked())

    def __len__(self) -> int:
        return len(self._entries)

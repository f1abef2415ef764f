import asyncio
import time
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Simple in-memory TTL cache

    ``max_size=None`` disables LRU eviction, which a replay guard needs: an
    evicted claim would let the same request through twice.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        max_size: Optional[int] = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._access_order: list = []
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if not self._live(key):
                return None

            # Update access order for LRU
            self._touch(key)
            return self._cache[key].value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            self._store(key, value, ttl)

    async def set_if_absent(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store ``value`` only if ``key`` has no live entry. Returns True if stored."""
        async with self._lock:
            if self._live(key):
                return False
            self._store(key, value, ttl)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._access_order:
                self._access_order.remove(key)
            return self._cache.pop(key, None) is not None

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._cache.items() if now > entry.expires_at]
            for key in expired:
                del self._cache[key]
                if key in self._access_order:
                    self._access_order.remove(key)
            return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
            self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def _live(self, key: str) -> bool:
        entry = self._cache.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expires_at:
            del self._cache[key]
            if key in self._access_order:
                self._access_order.remove(key)
            return False
        return True

    def _touch(self, key: str) -> None:
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

    def _store(self, key: str, value: Any, ttl: Optional[float]) -> None:
        ttl = ttl or self.default_ttl
        self._cache[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self._touch(key)

        # Evict oldest if over max size
        if self.max_size is not None:
            while len(self._cache) > self.max_size:
                oldest_key = self._access_order.pop(0)
                if oldest_key in self._cache:
                    del self._cache[oldest_key]

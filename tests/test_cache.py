"""
Tests for the TTL cache backing the sponsorship replay guard.
"""

import pytest

from app.cache import TTLCache


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


class TestTTLCache:
    @pytest.mark.asyncio
    async def test_set_and_expire(self, fake_time):
        cache = TTLCache(default_ttl=10, clock=fake_time)
        await cache.set("k", "v")

        assert await cache.get("k") == "v"
        fake_time.now += 11
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_set_if_absent(self, fake_time):
        cache = TTLCache(default_ttl=10, clock=fake_time)

        assert await cache.set_if_absent("sig", "a")
        assert not await cache.set_if_absent("sig", "b")
        assert await cache.get("sig") == "a"

        fake_time.now += 11
        assert await cache.set_if_absent("sig", "c")

    @pytest.mark.asyncio
    async def test_delete(self, fake_time):
        cache = TTLCache(clock=fake_time)
        await cache.set("k", 1)

        assert await cache.delete("k")
        assert not await cache.delete("k")
        assert await cache.set_if_absent("k", 2)

    @pytest.mark.asyncio
    async def test_lru_eviction(self, fake_time):
        cache = TTLCache(max_size=2, clock=fake_time)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)

        assert await cache.get("b") is None
        assert await cache.get("a") == 1

    @pytest.mark.asyncio
    async def test_unbounded_never_evicts(self, fake_time):
        cache = TTLCache(max_size=None, clock=fake_time)
        for i in range(2000):
            await cache.set(str(i), i)
        assert cache.size() == 2000

    @pytest.mark.asyncio
    async def test_purge_expired(self, fake_time):
        cache = TTLCache(default_ttl=10, clock=fake_time)
        await cache.set("short", 1, ttl=1)
        await cache.set("long", 2)
        fake_time.now += 5

        assert await cache.purge_expired() == 1
        assert cache.size() == 1

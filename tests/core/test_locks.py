"""
Tests for per-key entity locks.
"""

import asyncio

import pytest

from app.core.locks import KeyedLocks


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_same_key_serialized(self):
        locks = KeyedLocks()
        order = []

        async def worker(name):
            async with locks.hold("0xAbC"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_keys_case_insensitive(self):
        locks = KeyedLocks()
        async with locks.hold("0xABC"):
            assert locks.is_locked("0xabc")

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        async with locks.hold("a"):
            await asyncio.wait_for(self._enter(locks, "b"), timeout=1)

    @pytest.mark.asyncio
    async def test_entries_dropped_when_idle(self):
        locks = KeyedLocks()
        async with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.is_locked("a")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    @staticmethod
    async def _enter(locks, key):
        async with locks.hold(key):
            return True

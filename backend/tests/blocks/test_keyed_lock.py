"""Tests for per-key asyncio locks."""

import asyncio

import pytest

from paer.blocks.locks import KeyedLock


class TestKeyedLock:
    async def test_same_key_serializes(self):
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("sen1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        async with locks.hold("sen1"):
            async with asyncio.timeout(1):
                async with locks.hold("sen2"):
                    assert locks.locked("sen1")
                    assert locks.locked("sen2")

    async def test_idle_keys_are_dropped(self):
        locks = KeyedLock()
        async with locks.hold(("paper", "par1")):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.locked(("paper", "par1"))

    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("sen1"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        async with asyncio.timeout(1):
            async with locks.hold("sen1"):
                pass

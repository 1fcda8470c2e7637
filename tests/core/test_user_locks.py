"""
Tests for the per-user lock registry.
"""

import asyncio

import pytest

from tradebot.core.locks import UserLocks


@pytest.mark.asyncio
async def test_entry_lives_while_held_or_awaited():
    locks = UserLocks()
    order = []

    async def worker(name, hold_for):
        async with locks.hold("u1"):
            order.append(name)
            await asyncio.sleep(hold_for)

    first = asyncio.create_task(worker("first", 0.05))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(worker("second", 0))
    await asyncio.sleep(0.01)

    assert locks.locked("u1")
    assert "u1" in locks and len(locks) == 1

    await asyncio.gather(first, second)
    assert order == ["first", "second"]
    assert "u1" not in locks and len(locks) == 0


@pytest.mark.asyncio
async def test_users_do_not_share_a_lock():
    locks = UserLocks()
    async with locks.hold("u1"):
        async with locks.hold("u2"):
            assert locks.locked("u1") and locks.locked("u2")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_entry_dropped_after_error():
    locks = UserLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("u1"):
            raise RuntimeError("boom")
    assert not locks.locked("u1")
    assert len(locks) == 0

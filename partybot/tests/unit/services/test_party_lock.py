"""
Unit tests for the per-party lock registry.
"""

import asyncio

import pytest

from partybot.services.party_lock import PartyLockRegistry

# pylint: disable=protected-access  # Reason: Test file - accessing protected members for unit testing


@pytest.mark.asyncio
async def test_waiters_acquire_in_submission_order():
    registry = PartyLockRegistry()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with registry.acquire("party_a"):
            order.append(f"{name}:start")
            await asyncio.sleep(0.01)
            order.append(f"{name}:end")

    await asyncio.gather(worker("first"), worker("second"), worker("third"))
    assert order == ["first:start", "first:end", "second:start", "second:end", "third:start", "third:end"]


@pytest.mark.asyncio
async def test_different_parties_do_not_block_each_other():
    registry = PartyLockRegistry()
    entered = asyncio.Event()

    async def holder() -> None:
        async with registry.acquire("party_a"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other() -> None:
        async with registry.acquire("party_b"):
            entered.set()

    await asyncio.gather(holder(), other())
    assert entered.is_set()


@pytest.mark.asyncio
async def test_state_dropped_when_idle():
    registry = PartyLockRegistry()
    async with registry.acquire("party_a"):
        assert registry.is_locked("party_a")
        assert len(registry) == 1
    assert not registry.is_locked("party_a")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    registry = PartyLockRegistry()
    with pytest.raises(RuntimeError):
        async with registry.acquire("party_a"):
            raise RuntimeError("boom")
    assert len(registry) == 0
    async with registry.acquire("party_a"):
        pass


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_leak_state():
    registry = PartyLockRegistry()
    release = asyncio.Event()

    async def holder() -> None:
        async with registry.acquire("party_a"):
            await release.wait()

    async def waiter() -> None:
        async with registry.acquire("party_a"):
            pass

    holder_task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    waiter_task = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    assert registry._states["party_a"].users == 2

    waiter_task.cancel()
    await asyncio.gather(waiter_task, return_exceptions=True)
    release.set()
    await holder_task
    assert len(registry) == 0

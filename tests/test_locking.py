"""Tests for the reconcile guard."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from lifecycle_agent.adapters.memory import InMemoryLockStrategy
from lifecycle_agent.primitives import LockAcquisitionError, ResourceIdentifier
from lifecycle_agent.seedgen import RECONCILE_GUARD, ReconcileResult

if TYPE_CHECKING:
    from conftest import Harness


RESOURCE = ResourceIdentifier("seedgen", "reconcile")


class TestInMemoryLockStrategy:
    async def test_acquire_and_release(self) -> None:
        strategy = InMemoryLockStrategy()
        token = await strategy.acquire(RESOURCE)
        assert strategy.is_locked(RESOURCE)

        await strategy.release(RESOURCE, token)
        assert not strategy.is_locked(RESOURCE)

    async def test_waiters_are_served_in_fifo_order(self) -> None:
        strategy = InMemoryLockStrategy()
        order: list[int] = []
        first = await strategy.acquire(RESOURCE)

        async def waiter(n: int) -> None:
            token = await strategy.acquire(RESOURCE)
            order.append(n)
            await strategy.release(RESOURCE, token)

        tasks = []
        for n in range(3):
            tasks.append(asyncio.create_task(waiter(n)))
            await asyncio.sleep(0)

        await strategy.release(RESOURCE, first)
        await asyncio.gather(*tasks)
        assert order == [0, 1, 2]
        assert not strategy.is_locked(RESOURCE)

    async def test_timeout_raises(self) -> None:
        strategy = InMemoryLockStrategy()
        await strategy.acquire(RESOURCE)

        with pytest.raises(LockAcquisitionError, match="within 0.05s"):
            await strategy.acquire(RESOURCE, timeout=0.05)

    async def test_release_with_wrong_token_is_ignored(self) -> None:
        strategy = InMemoryLockStrategy()
        await strategy.acquire(RESOURCE)

        await strategy.release(RESOURCE, "not-the-token")
        assert strategy.is_locked(RESOURCE)

    async def test_timed_out_waiter_does_not_block_the_queue(self) -> None:
        strategy = InMemoryLockStrategy()
        first = await strategy.acquire(RESOURCE)
        with pytest.raises(LockAcquisitionError):
            await strategy.acquire(RESOURCE, timeout=0.01)

        pending = asyncio.create_task(strategy.acquire(RESOURCE))
        await asyncio.sleep(0)
        await strategy.release(RESOURCE, first)

        token = await asyncio.wait_for(pending, timeout=1)
        await strategy.release(RESOURCE, token)


async def test_reconciles_never_overlap(harness: Harness) -> None:
    active = 0
    max_active = 0
    calls: list[str] = []

    async def slow_reconcile(name: str) -> ReconcileResult:
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        calls.append(name)
        await asyncio.sleep(0.01)
        active -= 1
        return ReconcileResult()

    harness.reconciler._instrumented = slow_reconcile  # type: ignore[method-assign]

    await asyncio.gather(
        *(harness.reconciler.reconcile(f"trigger-{n}") for n in range(4))
    )

    assert max_active == 1
    assert calls == ["trigger-0", "trigger-1", "trigger-2", "trigger-3"]
    assert not harness.lock.is_locked(RECONCILE_GUARD)

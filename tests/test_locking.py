"""
tests/test_locking.py
~~~~~~~~~~~~~~~~~~~~~
Tests for portal_empleado.locking: mutual exclusion per period,
independence of distinct periods, cancellation and timeouts.
"""

from __future__ import annotations

import asyncio

import pytest

from portal_empleado.exceptions import LockTimeoutError
from portal_empleado.locking import PeriodLock

CUIL = "20123456789"


async def _wait_for_pending(locks: PeriodLock, count: int, *args) -> None:
    for _ in range(200):
        if locks.pending(*args) >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"never reached {count} pending")


class TestMutualExclusion:
    def test_never_two_holders(self):
        async def scenario():
            locks = PeriodLock()
            state = {"holders": 0, "peak": 0}

            async def worker():
                async with locks.hold(CUIL, 2026, 1):
                    state["holders"] += 1
                    state["peak"] = max(state["peak"], state["holders"])
                    await asyncio.sleep(0.001)
                    state["holders"] -= 1

            await asyncio.gather(*(worker() for _ in range(25)))
            return state["peak"], len(locks)

        peak, remaining = asyncio.run(scenario())
        assert peak == 1
        assert remaining == 0

    def test_distinct_periods_do_not_block(self):
        async def scenario():
            locks = PeriodLock()
            async with locks.hold(CUIL, 2026, 1):
                lease = await locks.acquire(CUIL, 2026, 2, timeout=0.5)
                lease.release()
                other = await locks.acquire("27999999990", 2026, 1, timeout=0.5)
                other.release()

        asyncio.run(scenario())

    def test_identity_formats_share_a_slot(self):
        async def scenario():
            locks = PeriodLock()
            async with locks.hold("20-12345678-9", 2026, 1):
                assert locks.locked(CUIL, 2026, 1)
                with pytest.raises(LockTimeoutError):
                    await locks.acquire(CUIL, 2026, 1, timeout=0.05)

        asyncio.run(scenario())


class TestRelease:
    def test_release_is_idempotent(self):
        async def scenario():
            locks = PeriodLock()
            lease = await locks.acquire(CUIL, 2026, 1)
            assert lease.held
            lease.release()
            lease.release()
            assert not lease.held
            return len(locks)

        assert asyncio.run(scenario()) == 0

    def test_released_when_body_raises(self):
        async def scenario():
            locks = PeriodLock()
            with pytest.raises(RuntimeError):
                async with locks.hold(CUIL, 2026, 1):
                    raise RuntimeError("boom")
            assert not locks.locked(CUIL, 2026, 1)
            lease = await locks.acquire(CUIL, 2026, 1, timeout=0.1)
            lease.release()

        asyncio.run(scenario())

    def test_lease_as_context_manager(self):
        async def scenario():
            locks = PeriodLock()
            async with await locks.acquire(CUIL, 2026, 1) as lease:
                assert lease.key == "20123456789:2026-01"
            return locks.locked(CUIL, 2026, 1)

        assert asyncio.run(scenario()) is False


class TestCancellation:
    def test_cancelled_waiter_leaves_nothing_behind(self):
        async def scenario():
            locks = PeriodLock()
            holder = await locks.acquire(CUIL, 2026, 1)
            waiter = asyncio.create_task(locks.acquire(CUIL, 2026, 1))
            await _wait_for_pending(locks, 2, CUIL, 2026, 1)

            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            assert locks.pending(CUIL, 2026, 1) == 1

            holder.release()
            assert len(locks) == 0
            lease = await locks.acquire(CUIL, 2026, 1, timeout=0.1)
            lease.release()

        asyncio.run(scenario())

    def test_timeout_leaves_nothing_behind(self):
        async def scenario():
            locks = PeriodLock()
            holder = await locks.acquire(CUIL, 2026, 1)
            with pytest.raises(LockTimeoutError) as info:
                await locks.acquire(CUIL, 2026, 1, timeout=0.01)
            assert info.value.key == "20123456789:2026-01"
            assert locks.pending(CUIL, 2026, 1) == 1
            holder.release()
            return len(locks)

        assert asyncio.run(scenario()) == 0

    def test_waiter_gets_lock_after_release(self):
        async def scenario():
            locks = PeriodLock()
            holder = await locks.acquire(CUIL, 2026, 1)
            waiter = asyncio.create_task(locks.acquire(CUIL, 2026, 1))
            await _wait_for_pending(locks, 2, CUIL, 2026, 1)
            assert not waiter.done()
            holder.release()
            lease = await asyncio.wait_for(waiter, 1)
            assert lease.held
            lease.release()

        asyncio.run(scenario())

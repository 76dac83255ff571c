"""
Tests for the browser pool.
"""

import asyncio

import pytest

from dashscrape.browser import BrowserPool, SlotState
from dashscrape.config import PoolConfig
from dashscrape.errors import (
    AuthFailure,
    NavigationTimeout,
    PoolAcquireTimeout,
    PoolExhausted,
)

from conftest import FakeLauncher


class TestAcquireRelease:
    """Tests for basic leasing."""

    @pytest.mark.asyncio
    async def test_lazy_launch(self, pool_config):
        """No browser is launched until the first acquire."""
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)
        await pool.start()

        assert launcher.started is True
        assert launcher.browsers == []

        slot = await pool.acquire()
        assert slot.state is SlotState.LEASED
        assert len(launcher.browsers) == 1

    @pytest.mark.asyncio
    async def test_idle_slot_is_reused(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        first = await pool.acquire()
        await pool.release(first)
        second = await pool.acquire()

        assert second is first
        assert second.use_count == 2
        assert len(launcher.browsers) == 1

    @pytest.mark.asyncio
    async def test_never_exceeds_max_size(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        a = await pool.acquire()
        b = await pool.acquire()

        with pytest.raises(PoolAcquireTimeout):
            await pool.acquire(timeout=0.05)

        assert a.slot_id != b.slot_id
        assert len(launcher.browsers) == 2
        assert pool.stats()["in_use"] == 2

    @pytest.mark.asyncio
    async def test_waiter_gets_released_slot(self, pool_config):
        """A third caller waits and receives the first slot returned."""
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        a = await pool.acquire()
        await pool.acquire()

        waiter = asyncio.create_task(pool.acquire(timeout=1.0))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await pool.release(a)
        slot = await waiter

        assert slot is a

    @pytest.mark.asyncio
    async def test_each_release_serves_one_waiter(self, pool_config):
        """With two waiters, one release hands out one slot and the other keeps waiting."""
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        a = await pool.acquire()
        b = await pool.acquire()

        waiters = [asyncio.create_task(pool.acquire(timeout=1.0)) for _ in range(2)]
        await asyncio.sleep(0.01)

        await pool.release(a)
        await asyncio.sleep(0.01)
        assert sum(w.done() for w in waiters) == 1

        await pool.release(b)
        slots = await asyncio.gather(*waiters)
        assert {s.slot_id for s in slots} == {a.slot_id, b.slot_id}

    @pytest.mark.asyncio
    async def test_prewarm(self):
        launcher = FakeLauncher()
        pool = BrowserPool(PoolConfig(max_size=2, prewarm=2, launch_backoff=0.0), launcher=launcher)
        await pool.start()

        assert len(launcher.browsers) == 2
        assert pool.stats()["idle"] == 2

    @pytest.mark.asyncio
    async def test_unknown_release_ignored(self, pool_config):
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        slot = await pool.acquire()
        await pool.release(slot)
        await pool.release(slot)

        assert pool.stats()["idle"] == 1


class TestCrashReplacement:
    """Tests for crashed and worn-out browsers."""

    @pytest.mark.asyncio
    async def test_crashed_slot_is_replaced(self, pool_config):
        """A crashed slot is closed and never leased again."""
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        slot = await pool.acquire()
        await pool.release(slot, crashed=True)

        assert launcher.browsers[0].closed is True
        assert pool.stats()["replaced_total"] == 1

        next_slot = await pool.acquire()
        assert next_slot.slot_id != slot.slot_id
        assert next_slot.browser is launcher.browsers[1]

    @pytest.mark.asyncio
    async def test_disconnected_browser_is_replaced_on_release(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        slot = await pool.acquire()
        slot.browser.connected = False
        await pool.release(slot)

        next_slot = await pool.acquire()
        assert next_slot is not slot

    @pytest.mark.asyncio
    async def test_idle_browser_that_died_is_skipped(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        slot = await pool.acquire()
        await pool.release(slot)
        slot.browser.connected = False

        next_slot = await pool.acquire()

        assert next_slot is not slot
        assert pool.stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_cancelled_acquire_returns_capacity(self):
        """Cancelling while a dead idle browser is torn down frees its capacity."""
        launcher = FakeLauncher()
        pool = BrowserPool(PoolConfig(max_size=1, launch_backoff=0.0), launcher=launcher)

        slot = await pool.acquire()
        await pool.release(slot)
        slot.browser.connected = False

        async def slow_close():
            await asyncio.sleep(1.0)

        slot.browser.close = slow_close

        pending = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.01)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert pool.stats()["launching"] == 0

        replacement = await pool.acquire(timeout=0.3)
        assert replacement.browser is launcher.browsers[1]

    @pytest.mark.asyncio
    async def test_recycled_after_max_uses(self):
        launcher = FakeLauncher()
        pool = BrowserPool(
            PoolConfig(max_size=1, max_uses_per_slot=2, launch_backoff=0.0),
            launcher=launcher,
        )

        for _ in range(2):
            slot = await pool.acquire()
            await pool.release(slot)

        slot = await pool.acquire()
        assert slot.browser is launcher.browsers[1]

    @pytest.mark.asyncio
    async def test_lease_crash_class_error_replaces(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        with pytest.raises(NavigationTimeout):
            async with pool.lease() as slot:
                raise NavigationTimeout("stuck")

        assert slot.state is SlotState.CLOSING
        assert launcher.browsers[0].closed is True

    @pytest.mark.asyncio
    async def test_lease_domain_error_keeps_slot(self, pool_config):
        """Auth failures say nothing about browser health."""
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        with pytest.raises(AuthFailure):
            async with pool.lease() as slot:
                raise AuthFailure("bad password")

        assert slot.state is SlotState.IDLE
        assert launcher.browsers[0].closed is False

    @pytest.mark.asyncio
    async def test_lease_unexpected_error_replaces(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)

        with pytest.raises(RuntimeError):
            async with pool.lease():
                raise RuntimeError("target closed")

        assert launcher.browsers[0].closed is True


class TestLaunchRetries:
    """Tests for launch failure handling."""

    @pytest.mark.asyncio
    async def test_launch_retried(self, pool_config):
        launcher = FakeLauncher(fail_first=2)
        pool = BrowserPool(pool_config, launcher=launcher)

        slot = await pool.acquire()

        assert launcher.attempts == 3
        assert slot.browser is launcher.browsers[0]

    @pytest.mark.asyncio
    async def test_launch_gives_up(self, pool_config):
        launcher = FakeLauncher(fail_first=10)
        pool = BrowserPool(pool_config, launcher=launcher)

        with pytest.raises(PoolExhausted):
            await pool.acquire()

        assert launcher.attempts == 3
        assert pool.stats()["launching"] == 0

    @pytest.mark.asyncio
    async def test_capacity_freed_after_failed_launch(self, pool_config):
        launcher = FakeLauncher(fail_first=3)
        pool = BrowserPool(pool_config, launcher=launcher)

        with pytest.raises(PoolExhausted):
            await pool.acquire()

        slot = await pool.acquire()
        assert slot.state is SlotState.LEASED


class TestShutdown:
    """Tests for pool shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_closes_browsers(self, pool_config):
        launcher = FakeLauncher()
        pool = BrowserPool(pool_config, launcher=launcher)
        slot = await pool.acquire()
        await pool.release(slot)

        await pool.shutdown()

        assert launcher.browsers[0].closed is True
        assert launcher.stopped is True
        assert pool.stats()["closed"] is True

    @pytest.mark.asyncio
    async def test_shutdown_twice(self, pool_config):
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        await pool.shutdown()
        await pool.shutdown()

    @pytest.mark.asyncio
    async def test_acquire_after_shutdown(self, pool_config):
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        await pool.shutdown()

        with pytest.raises(PoolExhausted):
            await pool.acquire()

    @pytest.mark.asyncio
    async def test_shutdown_wakes_waiters(self, pool_config):
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        await pool.acquire()
        await pool.acquire()

        waiter = asyncio.create_task(pool.acquire(timeout=5.0))
        await asyncio.sleep(0.01)
        await pool.shutdown()

        with pytest.raises(PoolExhausted):
            await waiter

    @pytest.mark.asyncio
    async def test_release_after_shutdown(self, pool_config):
        pool = BrowserPool(pool_config, launcher=FakeLauncher())
        slot = await pool.acquire()
        await pool.shutdown()

        await pool.release(slot)

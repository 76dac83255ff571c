"""
Browser Pool Module

Bounded pool of headless Chromium processes shared by all scrapes.
Each lease hands out one browser; callers open their own isolated context in it.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Deque, Dict, Optional

from dashscrape.config import PoolConfig
from dashscrape.errors import PoolAcquireTimeout, PoolExhausted, is_crash_class


logger = logging.getLogger(__name__)


class SlotState(Enum):
    """Lifecycle of a pool slot."""
    IDLE = "idle"
    LEASED = "leased"
    CLOSING = "closing"


@dataclass
class PoolSlot:
    """One reusable browser process."""

    slot_id: int
    browser: Any
    state: SlotState = SlotState.IDLE
    created_at: float = field(default_factory=time.time)
    last_used: float = 0.0
    use_count: int = 0

    def is_alive(self) -> bool:
        """Whether the underlying browser process is still connected."""
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False


class PlaywrightLauncher:
    """Starts the Playwright driver once and launches Chromium processes from it."""

    def __init__(self, config: PoolConfig):
        self._config = config
        self._playwright = None

    async def start(self) -> None:
        if self._playwright is None:
            from playwright.async_api import async_playwright
            self._playwright = await async_playwright().start()

    async def launch(self) -> Any:
        await self.start()
        return await self._playwright.chromium.launch(
            headless=self._config.headless,
            args=self._config.launch_args,
        )

    async def stop(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class BrowserPool:
    """
    Bounded browser pool with crash replacement.

    Features:
    - Lazy launch up to max_size processes (launches in progress count)
    - FIFO reuse of idle browsers
    - Crashed or worn-out browsers are torn down and replaced before reuse
    - Bounded launch retries with linear backoff

    Example:
        pool = BrowserPool()
        await pool.start()

        async with pool.lease() as slot:
            context = await slot.browser.new_context()
            ...

        await pool.shutdown()
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        launcher: Any = None,
    ):
        """
        Initialize the pool.

        Args:
            config: Pool configuration (defaults from environment)
            launcher: Object with async start/launch/stop (Playwright by default)
        """
        self._config = config or PoolConfig()
        self._launcher = launcher or PlaywrightLauncher(self._config)

        self._slots: Dict[int, PoolSlot] = {}
        self._idle: Deque[PoolSlot] = deque()
        self._cond = asyncio.Condition()
        self._ids = itertools.count(1)

        self._launching = 0
        self._closed = False

        # Stats
        self._launched_total = 0
        self._replaced_total = 0

    @property
    def max_size(self) -> int:
        return self._config.max_size

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Start the browser driver and launch prewarmed slots."""
        await self._launcher.start()

        for _ in range(min(self._config.prewarm, self._config.max_size)):
            async with self._cond:
                self._launching += 1
            try:
                slot = await self._launch_slot()
            except PoolExhausted:
                logger.warning("Prewarm launch failed, browsers will launch on demand")
                async with self._cond:
                    self._launching -= 1
                    self._cond.notify_all()
                break
            async with self._cond:
                self._launching -= 1
                self._slots[slot.slot_id] = slot
                self._idle.append(slot)
                self._cond.notify_all()

        logger.info(f"Browser pool ready (max_size={self.max_size}, idle={len(self._idle)})")

    async def _launch_browser(self) -> Any:
        """Launch one browser process, retrying with backoff."""
        attempts = self._config.launch_retries
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                browser = await self._launcher.launch()
                self._launched_total += 1
                return browser
            except Exception as e:
                last_error = e
                logger.warning(f"Browser launch attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self._config.launch_backoff * attempt)

        raise PoolExhausted(
            f"Could not launch a browser after {attempts} attempts: {last_error}"
        )

    async def _launch_slot(self) -> PoolSlot:
        browser = await self._launch_browser()
        slot = PoolSlot(slot_id=next(self._ids), browser=browser)
        logger.info(f"Launched browser slot {slot.slot_id}")
        return slot

    async def _close_slot(self, slot: PoolSlot) -> None:
        """Tear down a slot's browser. Errors are logged, the slot is gone either way."""
        slot.state = SlotState.CLOSING
        try:
            await slot.browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser slot {slot.slot_id}: {e}")

    def _lease(self, slot: PoolSlot) -> PoolSlot:
        slot.state = SlotState.LEASED
        slot.use_count += 1
        slot.last_used = time.time()
        return slot

    async def acquire(self, timeout: float | None = None) -> PoolSlot:
        """
        Lease a browser slot.

        Args:
            timeout: Seconds to wait for a slot (default from config)

        Returns:
            A leased PoolSlot

        Raises:
            PoolAcquireTimeout: No slot became available in time
            PoolExhausted: The pool is closed or browsers cannot be launched
        """
        timeout = self._config.acquire_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        stale: list[PoolSlot] = []

        async with self._cond:
            while True:
                if self._closed:
                    raise PoolExhausted("Browser pool is shut down")

                while self._idle:
                    slot = self._idle.popleft()
                    if slot.is_alive():
                        return self._lease(slot)
                    # Died while idle; free its capacity and replace below.
                    logger.warning(f"Idle browser slot {slot.slot_id} disconnected")
                    self._slots.pop(slot.slot_id, None)
                    stale.append(slot)

                if len(self._slots) + self._launching < self._config.max_size:
                    self._launching += 1
                    break

                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise PoolAcquireTimeout(
                        f"No browser available within {timeout:.1f}s",
                        max_size=self._config.max_size,
                    )
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    raise PoolAcquireTimeout(
                        f"No browser available within {timeout:.1f}s",
                        max_size=self._config.max_size,
                    ) from None

        try:
            for dead in stale:
                await self._close_slot(dead)
                self._replaced_total += 1
            slot = await self._launch_slot()
        except BaseException:
            async with self._cond:
                self._launching -= 1
                self._cond.notify_all()
            raise

        async with self._cond:
            self._launching -= 1
            if self._closed:
                self._cond.notify_all()
                closed = True
            else:
                self._slots[slot.slot_id] = slot
                closed = False

        if closed:
            await self._close_slot(slot)
            raise PoolExhausted("Browser pool is shut down")
        return self._lease(slot)

    async def release(self, slot: PoolSlot, crashed: bool = False) -> None:
        """
        Return a leased slot.

        Args:
            slot: The slot obtained from acquire()
            crashed: The browser failed during use and must be replaced
        """
        async with self._cond:
            if self._closed:
                # shutdown() already closed every browser
                return

            if self._slots.get(slot.slot_id) is not slot or slot.state is not SlotState.LEASED:
                logger.warning(f"Ignoring release of unknown browser slot {slot.slot_id}")
                return

            if crashed or not slot.is_alive():
                reason = "crashed"
            elif slot.use_count >= self._config.max_uses_per_slot:
                reason = f"reached {slot.use_count} uses"
            else:
                slot.state = SlotState.IDLE
                self._idle.append(slot)
                self._cond.notify_all()
                return

            # Capacity stays reserved while the replacement launches.
            slot.state = SlotState.CLOSING

        logger.info(f"Retiring browser slot {slot.slot_id} ({reason})")
        await self._close_slot(slot)
        await self._replace(slot)

    async def _replace(self, old: PoolSlot) -> None:
        """Swap a retired slot for a freshly launched one."""
        try:
            new = await self._launch_slot()
        except PoolExhausted as e:
            logger.error(f"Could not replace browser slot {old.slot_id}: {e}")
            new = None

        async with self._cond:
            self._slots.pop(old.slot_id, None)
            self._replaced_total += 1
            if new is not None and not self._closed:
                self._slots[new.slot_id] = new
                self._idle.append(new)
            self._cond.notify_all()

        if new is not None and self._closed:
            await self._close_slot(new)

    @asynccontextmanager
    async def lease(self, timeout: float | None = None) -> AsyncIterator[PoolSlot]:
        """
        Lease a slot for the duration of a block.

        Crash-class exceptions inside the block send the slot through the
        replacement path; the slot is always released.
        """
        slot = await self.acquire(timeout)
        crashed = False
        try:
            yield slot
        except BaseException as e:
            crashed = is_crash_class(e)
            raise
        finally:
            await self.release(slot, crashed=crashed)

    async def shutdown(self) -> None:
        """Close every browser and stop the driver. Safe to call twice."""
        async with self._cond:
            if self._closed:
                return
            self._closed = True
            slots = list(self._slots.values())
            self._slots.clear()
            self._idle.clear()
            self._cond.notify_all()

        logger.info(f"Shutting down browser pool ({len(slots)} browsers)")
        await asyncio.gather(*(self._close_slot(s) for s in slots))
        try:
            await self._launcher.stop()
        except Exception as e:
            logger.warning(f"Error stopping browser driver: {e}")

    def stats(self) -> dict:
        """Get pool statistics. Read-only."""
        in_use = sum(1 for s in self._slots.values() if s.state is SlotState.LEASED)
        return {
            "max_size": self._config.max_size,
            "size": len(self._slots),
            "in_use": in_use,
            "idle": len(self._idle),
            "launching": self._launching,
            "launched_total": self._launched_total,
            "replaced_total": self._replaced_total,
            "closed": self._closed,
        }

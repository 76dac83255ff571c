"""
Scrape Orchestrator Module

The coordination core. Connects the cache, the browser pool and the scrape
executor, and guarantees at most one concurrent scrape per identity.

Per identity the orchestrator is in one of three states:
- Idle: no fresh cache entry, nothing in flight
- Cached: a fresh cache entry exists, served without touching a browser
- InFlight: a scrape is running; new callers join it instead of starting another
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from dashscrape.browser.executor import ScrapeExecutor
from dashscrape.browser.pool import BrowserPool
from dashscrape.cache.store import CacheStore
from dashscrape.errors import DashscrapeError, TransientNetworkError
from dashscrape.models import CacheStats, Credentials, DashboardData, ScrapeOutcome


logger = logging.getLogger(__name__)


@dataclass
class InFlightScrape:
    """A scrape currently executing for one identity."""

    identity: str
    future: asyncio.Future
    started_at: float
    joined: int = 1
    task: Optional[asyncio.Task] = None


class ScrapeOrchestrator:
    """
    Cache-aware, coalescing scrape coordinator.

    Implements the request workflow:
    1. Cache lookup (fast path)
    2. Join an in-flight scrape for the same identity, or start one
    3. Lease a browser and run the executor (one retry on transient network errors)
    4. Write successful results through to cache
    5. Resolve every joined caller with the identical outcome

    Example:
        orchestrator = ScrapeOrchestrator(cache, pool, executor)
        outcome = await orchestrator.fetch("admin-1", Credentials("70123456", "secret"))
    """

    def __init__(
        self,
        cache: CacheStore,
        pool: BrowserPool,
        executor: ScrapeExecutor,
        cache_enabled: bool = True,
        ttl_seconds: int | None = None,
        acquire_timeout: float | None = None,
        transient_retries: int = 1,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the orchestrator.

        Args:
            cache: Result cache adapter
            pool: Browser pool
            executor: Scrape executor
            cache_enabled: Consult and populate the cache at all
            ttl_seconds: Freshness window (defaults to the cache's TTL)
            acquire_timeout: Pool acquire timeout override
            transient_retries: Extra attempts after a TransientNetworkError
            clock: Time source for cache freshness
        """
        self._cache = cache
        self._pool = pool
        self._executor = executor
        self._cache_enabled = cache_enabled and cache.enabled
        self._ttl = ttl_seconds or cache.ttl_seconds
        self._acquire_timeout = acquire_timeout
        self._transient_retries = transient_retries
        self._clock = clock

        self._in_flight: Dict[str, InFlightScrape] = {}
        self._lock = asyncio.Lock()

        # Stats
        self._scrapes_started = 0

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def scrapes_started(self) -> int:
        return self._scrapes_started

    async def fetch(
        self,
        identity: str,
        credentials: Credentials,
        use_cache: bool = True,
    ) -> ScrapeOutcome:
        """
        Get dashboard data for an identity.

        Args:
            identity: Account key (admin id or phone number)
            credentials: Portal login for that account
            use_cache: Serve a fresh cached result if one exists. A forced
                refresh still joins an in-flight scrape and still writes through.

        Returns:
            ScrapeOutcome tagged with ``cached``; failures are outcomes, not exceptions
        """
        if not identity or not identity.strip():
            raise ValueError("identity must be a non-empty string")

        start = time.time()

        if self._cache_enabled and use_cache:
            entry = await self._cache.get(identity)
            if entry is not None and self._clock() - entry.cached_at < self._ttl:
                logger.info(f"Cache hit for {identity} (age {self._clock() - entry.cached_at:.0f}s)")
                return ScrapeOutcome(
                    identity=identity,
                    success=True,
                    cached=True,
                    data=entry.data,
                    cached_at=entry.cached_at,
                    duration=time.time() - start,
                )

        async with self._lock:
            record = self._in_flight.get(identity)
            if record is not None:
                record.joined += 1
                logger.info(f"Scrape for {identity} already in flight, joining ({record.joined} callers)")
            else:
                record = InFlightScrape(
                    identity=identity,
                    future=asyncio.get_running_loop().create_future(),
                    started_at=time.time(),
                )
                self._in_flight[identity] = record
                self._scrapes_started += 1
                record.task = asyncio.create_task(self._complete(record, credentials))

        # The scrape keeps running for the other callers if this one goes away.
        outcome = await asyncio.shield(record.future)
        return dataclasses.replace(outcome, duration=time.time() - start)

    async def _complete(self, record: InFlightScrape, credentials: Credentials) -> None:
        """Run the scrape, write through, retire the record, resolve callers."""
        identity = record.identity
        outcome = self._failure(identity, "CANCELLED", "Scrape was cancelled", 503)

        try:
            outcome = await self._attempt(identity, credentials)

            # Written while this record still owns the identity, so an older
            # scrape can never overwrite the result of a newer one.
            if outcome.success and self._cache_enabled:
                await self._cache.set(identity, outcome.data, self._ttl)
        finally:
            # No awaits from here on: a cancellation must not strand the callers.
            if self._in_flight.get(identity) is record:
                del self._in_flight[identity]
            if not record.future.done():
                record.future.set_result(outcome)

            logger.info(
                f"Scrape for {identity} finished in {time.time() - record.started_at:.2f}s "
                f"(success={outcome.success}, callers={record.joined})"
            )

    async def _attempt(self, identity: str, credentials: Credentials) -> ScrapeOutcome:
        """Run the scrape and turn its result or failure into an outcome."""
        try:
            data = await self._scrape(identity, credentials)
        except DashscrapeError as e:
            logger.warning(f"Scrape for {identity} failed: [{e.code}] {e.message}")
            return self._failure(identity, e.code, e.message, e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error scraping {identity}")
            return self._failure(identity, "INTERNAL_ERROR", str(e) or type(e).__name__, 500)
        return ScrapeOutcome(identity=identity, success=True, data=data)

    async def _scrape(self, identity: str, credentials: Credentials) -> DashboardData:
        """Lease a browser and run the executor, retrying transient network errors."""
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._pool.lease(self._acquire_timeout) as slot:
                    return await self._executor.run(slot, identity, credentials)
            except TransientNetworkError as e:
                if attempt > self._transient_retries:
                    raise
                logger.warning(f"Transient error for {identity}, retrying (attempt {attempt}): {e.message}")

    @staticmethod
    def _failure(identity: str, code: str, message: str, status_code: int) -> ScrapeOutcome:
        return ScrapeOutcome(
            identity=identity,
            success=False,
            error_code=code,
            error_message=message,
            status_code=status_code,
        )

    async def invalidate(self, identity: str) -> None:
        """Drop the cached result for an identity. Always succeeds."""
        await self._cache.delete(identity)

    async def cache_stats(self, identity: str) -> Optional[CacheStats]:
        """Cache introspection; never triggers a scrape."""
        if not self._cache_enabled:
            return None
        return await self._cache.stats(identity)

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def in_flight_identities(self) -> List[str]:
        return list(self._in_flight)

    async def close(self) -> None:
        """Cancel scrapes still running (used at shutdown)."""
        tasks = [r.task for r in list(self._in_flight.values()) if r.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

"""
Health Reporter Module

Aggregates pool and cache status for external monitoring. Never mutates either
subsystem, and reports a failing subsystem as false/None fields instead of
raising.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dashscrape.browser.pool import BrowserPool
from dashscrape.cache.store import CacheStatus, CacheStore
from dashscrape.orchestrator import ScrapeOrchestrator


logger = logging.getLogger(__name__)


class HealthReporter:
    """
    Read-only health snapshot of the service.

    Example:
        reporter = HealthReporter(pool, cache, orchestrator)
        report = await reporter.report()
        # {"status": "ok", "pool": {...}, "cache": {...}, "inFlight": 0}
    """

    def __init__(
        self,
        pool: Optional[BrowserPool],
        cache: Optional[CacheStore],
        orchestrator: Optional[ScrapeOrchestrator] = None,
    ):
        self._pool = pool
        self._cache = cache
        self._orchestrator = orchestrator

    def _pool_report(self) -> Dict[str, Any]:
        if self._pool is None:
            return {"available": False}
        try:
            stats = self._pool.stats()
        except Exception as e:
            logger.warning(f"Pool stats unavailable: {e}")
            return {"available": False}
        return {"available": not stats["closed"], **stats}

    async def _cache_report(self) -> Dict[str, Any]:
        if self._cache is None:
            return {"enabled": False, "status": CacheStatus.DISABLED.value, "reachable": False, "ttl": None}

        try:
            enabled = self._cache.enabled
            ttl = self._cache.ttl_seconds
            status = self._cache.status.value
            reachable = await self._cache.ping() if enabled else False
        except Exception as e:
            logger.warning(f"Cache status unavailable: {e}")
            return {"enabled": False, "status": CacheStatus.UNREACHABLE.value, "reachable": False, "ttl": None}

        return {
            "enabled": enabled,
            "status": status,
            "reachable": reachable,
            "ttl": ttl,
            "ttlMinutes": round(ttl / 60),
        }

    async def report(self) -> Dict[str, Any]:
        """Build the health payload."""
        pool = self._pool_report()
        cache = await self._cache_report()

        in_flight: Optional[int] = None
        if self._orchestrator is not None:
            in_flight = self._orchestrator.in_flight_count()

        healthy = pool["available"] and (not cache["enabled"] or cache["reachable"])

        return {
            "status": "ok" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "pool": pool,
            "cache": cache,
            "inFlight": in_flight,
        }

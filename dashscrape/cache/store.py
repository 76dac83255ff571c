"""
Cache Store Module

Thin adapter over an external Redis store with per-key expiry.
Reads and writes fail soft: when the backend is unreachable every lookup is a
miss and every write is a logged no-op, so the service is never less reliable
than it would be with caching disabled.
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote

import redis.asyncio as redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from dashscrape.config import CacheConfig
from dashscrape.errors import CacheUnavailable
from dashscrape.models import CacheEntry, CacheStats, DashboardData


logger = logging.getLogger(__name__)

# Everything a store round trip or a malformed payload can raise.
_SOFT_ERRORS = (RedisError, OSError, asyncio.TimeoutError, ValueError, KeyError, TypeError)


class CacheStatus(Enum):
    """Last known state of the cache backend."""
    DISABLED = "disabled"
    WARMING = "warming"        # startup ping timed out, continuing optimistically
    OK = "ok"
    UNREACHABLE = "unreachable"


class CacheStore:
    """
    Redis-backed result cache.

    Example:
        store = CacheStore(CacheConfig(url="redis://localhost:6379/0", token="secret"))
        await store.connect()

        entry = await store.get("admin-1")
        if entry is None:
            await store.set("admin-1", data)
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        client: Any = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the adapter.

        Args:
            config: Cache configuration (defaults from environment)
            client: Pre-built async Redis client (skips building one from config)
            clock: Time source for cached_at / age
        """
        self._config = config or CacheConfig()
        self._client = client
        self._clock = clock
        self._enabled = client is not None or self._config.enabled
        self._status = CacheStatus.OK if client is not None else CacheStatus.DISABLED

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def ttl_seconds(self) -> int:
        return self._config.ttl_seconds

    @property
    def status(self) -> CacheStatus:
        return self._status

    def key(self, identity: str, kind: str = "data") -> str:
        """
        Build the store key for an identity.

        The identity is percent-encoded, so distinct identities never share a
        key and none can inject a ":" separator.
        """
        encoded = quote(str(identity), safe="")
        return f"{self._config.key_prefix}:{encoded}:{kind}"

    async def connect(self) -> None:
        """
        Build the client and check reachability.

        Missing credentials disable caching instead of failing startup. A ping
        that merely times out is treated as a cold start, not an outage.
        """
        if not self._enabled:
            logger.warning("Cache credentials not configured, caching disabled")
            self._status = CacheStatus.DISABLED
            return

        if self._client is None:
            self._client = redis.from_url(
                self._config.url,
                password=self._config.token,
                socket_timeout=self._config.socket_timeout,
                socket_connect_timeout=self._config.socket_timeout,
                decode_responses=True,
            )

        try:
            await asyncio.wait_for(self._client.ping(), timeout=self._config.startup_ping_timeout)
            self._status = CacheStatus.OK
            logger.info(f"Cache connected (ttl={self.ttl_seconds}s)")
        except (asyncio.TimeoutError, RedisTimeoutError):
            self._status = CacheStatus.WARMING
            logger.warning("Cache ping timed out at startup, continuing optimistically")
        except (RedisError, OSError) as e:
            self._status = CacheStatus.UNREACHABLE
            logger.warning(f"Cache unreachable at startup, requests will scrape: {e}")

    async def close(self) -> None:
        """Release the underlying connection pool."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except _SOFT_ERRORS as e:
                logger.debug(f"Error closing cache client: {e}")

    def _check_enabled(self) -> None:
        if not self._enabled or self._client is None:
            raise CacheUnavailable("Cache is disabled")

    def _mark(self, ok: bool) -> None:
        self._status = CacheStatus.OK if ok else CacheStatus.UNREACHABLE

    async def get(self, identity: str) -> Optional[CacheEntry]:
        """
        Look up a cached result.

        Returns:
            The entry, or None on miss, when disabled, or on any store error
        """
        try:
            self._check_enabled()
            raw = await self._client.get(self.key(identity))
            self._mark(True)
            if raw is None:
                return None
            return CacheEntry.from_dict(json.loads(raw))
        except CacheUnavailable:
            return None
        except _SOFT_ERRORS as e:
            self._mark(False)
            logger.warning(f"Cache get failed for {identity}: {e}")
            return None

    async def set(
        self,
        identity: str,
        data: DashboardData,
        ttl_seconds: int | None = None,
    ) -> None:
        """
        Store a successful result. Best-effort: failures are logged only.

        Args:
            identity: Identity key
            data: Complete dashboard payload
            ttl_seconds: Expiry override (defaults to configured TTL)
        """
        try:
            self._check_enabled()
            entry = CacheEntry(data=data, cached_at=self._clock())
            await self._client.set(
                self.key(identity),
                json.dumps(entry.to_dict()),
                ex=ttl_seconds or self.ttl_seconds,
            )
            self._mark(True)
        except CacheUnavailable:
            return
        except _SOFT_ERRORS as e:
            self._mark(False)
            logger.warning(f"Cache set failed for {identity}: {e}")

    async def delete(self, identity: str) -> None:
        """Invalidate an identity's entry. Deleting a missing key is a no-op."""
        try:
            self._check_enabled()
            await self._client.delete(self.key(identity))
            self._mark(True)
            logger.info(f"Cache cleared for {identity}")
        except CacheUnavailable:
            return
        except _SOFT_ERRORS as e:
            self._mark(False)
            logger.warning(f"Cache delete failed for {identity}: {e}")

    async def stats(self, identity: str) -> Optional[CacheStats]:
        """
        Introspect an identity's entry without triggering a scrape.

        Returns:
            CacheStats, or None when disabled or the store cannot be read
        """
        try:
            self._check_enabled()
            key = self.key(identity)
            raw = await self._client.get(key)
            remaining = await self._client.ttl(key)
            self._mark(True)
        except CacheUnavailable:
            return None
        except _SOFT_ERRORS as e:
            self._mark(False)
            logger.warning(f"Cache stats failed for {identity}: {e}")
            return None

        if raw is None:
            return CacheStats(
                has_data=False,
                last_refresh=None,
                age_seconds=None,
                ttl_seconds=self.ttl_seconds,
            )

        try:
            entry = CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Discarding unreadable cache entry for {identity}")
            return None

        return CacheStats(
            has_data=True,
            last_refresh=entry.cached_at,
            age_seconds=round(max(0.0, self._clock() - entry.cached_at), 3),
            ttl_seconds=self.ttl_seconds,
            expires_in=remaining if remaining is not None and remaining >= 0 else None,
        )

    async def ping(self) -> bool:
        """Read-only reachability probe."""
        if not self._enabled or self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(
                self._client.ping(),
                timeout=self._config.socket_timeout,
            ))
        except _SOFT_ERRORS:
            return False

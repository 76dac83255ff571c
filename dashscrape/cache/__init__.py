"""Cache module - Redis-backed scrape result store."""

from .store import CacheStore, CacheStatus

__all__ = ["CacheStore", "CacheStatus"]

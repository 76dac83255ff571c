"""
Value types shared between the cache, orchestrator and HTTP layers.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

# Structured payload produced by the dashboard parser.
DashboardData = Dict[str, Any]


@dataclass(frozen=True)
class Credentials:
    """Portal login for one identity."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class CacheEntry:
    """A cached scrape result."""

    data: DashboardData
    cached_at: float

    def to_dict(self) -> dict:
        return {"data": self.data, "cached_at": self.cached_at}

    @classmethod
    def from_dict(cls, raw: dict) -> "CacheEntry":
        return cls(data=raw["data"], cached_at=float(raw["cached_at"]))


@dataclass(frozen=True)
class CacheStats:
    """Read-only cache introspection for one identity."""

    has_data: bool
    last_refresh: Optional[float]
    age_seconds: Optional[float]
    ttl_seconds: int
    expires_in: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ScrapeOutcome:
    """What every caller of ``fetch`` receives."""

    identity: str
    success: bool
    cached: bool = False
    data: Optional[DashboardData] = None
    cached_at: Optional[float] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    status_code: int = 200
    duration: float = 0.0

    @property
    def error(self) -> Optional[dict]:
        if self.success:
            return None
        return {"code": self.error_code, "message": self.error_message}

"""
Error taxonomy.

Every failure a caller can observe carries a stable ``code`` and a
human-readable message, and renders itself with ``to_dict()``.
"""

from typing import Any, Dict


class DashscrapeError(Exception):
    """Base class for all classified failures."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "", **details: Any):
        self.message = message or self.__class__.__name__
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


class RequestValidationFailure(DashscrapeError):
    """The request body or path parameters are invalid."""

    code = "VALIDATION_ERROR"
    status_code = 422


class CacheUnavailable(DashscrapeError):
    """The cache backend could not be reached. Never leaves the cache adapter."""

    code = "CACHE_UNAVAILABLE"
    status_code = 503


class PoolExhausted(DashscrapeError):
    """No browser could be provided (launch retries exhausted or pool closed)."""

    code = "POOL_EXHAUSTED"
    status_code = 503


class PoolAcquireTimeout(PoolExhausted):
    """No slot became idle before the acquire timeout."""

    code = "POOL_TIMEOUT"


class ScrapeError(DashscrapeError):
    """
    A scrape-domain failure.

    ``crash_class`` marks errors after which the browser that produced them
    must not be leased again.
    """

    code = "SCRAPE_ERROR"
    status_code = 502
    crash_class = False


class AuthFailure(ScrapeError):
    code = "AUTH_FAILURE"
    status_code = 401


class NavigationTimeout(ScrapeError):
    code = "NAVIGATION_TIMEOUT"
    status_code = 504
    crash_class = True


class ParseFailure(ScrapeError):
    code = "PARSE_FAILURE"
    status_code = 502


class TransientNetworkError(ScrapeError):
    code = "TRANSIENT_NETWORK"
    status_code = 502


def is_crash_class(exc: BaseException) -> bool:
    """True when ``exc`` leaves the browser in an unknown state."""
    if isinstance(exc, ScrapeError):
        return exc.crash_class
    return True
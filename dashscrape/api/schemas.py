"""
Request and response bodies for the HTTP surface.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dashscrape.models import CacheStats, Credentials, ScrapeOutcome


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialsIn(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)

    def to_credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)


class ScrapeRequest(ApiModel):
    """Body of ``POST /scrape``."""

    identity: str = Field(..., min_length=1, max_length=256)
    credentials: CredentialsIn
    refresh: bool = Field(default=False, description="Skip the cached result and scrape now")

    @field_validator("identity")
    @classmethod
    def identity_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identity must not be blank")
        return v


class ErrorInfo(ApiModel):
    code: str
    message: str


class ScrapeResponse(ApiModel):
    """Body returned by ``POST /scrape`` for both success and failure."""

    success: bool
    identity: str
    cached: bool = False
    data: Optional[Dict[str, Any]] = None
    cached_at: Optional[float] = None
    error: Optional[ErrorInfo] = None
    duration: float = 0.0

    @classmethod
    def from_outcome(cls, outcome: ScrapeOutcome) -> "ScrapeResponse":
        error = None
        if not outcome.success:
            error = ErrorInfo(
                code=outcome.error_code or "INTERNAL_ERROR",
                message=outcome.error_message or "",
            )
        return cls(
            success=outcome.success,
            identity=outcome.identity,
            cached=outcome.cached,
            data=outcome.data,
            cached_at=outcome.cached_at,
            error=error,
            duration=round(outcome.duration, 3),
        )


class CacheStatsResponse(ApiModel):
    """Body of ``GET /cache/{identity}/stats``."""

    identity: str
    enabled: bool
    available: bool
    has_data: Optional[bool] = None
    last_refresh: Optional[float] = None
    age_seconds: Optional[float] = None
    ttl_seconds: Optional[int] = None
    expires_in: Optional[int] = None

    @classmethod
    def from_stats(
        cls,
        identity: str,
        enabled: bool,
        stats: Optional[CacheStats],
    ) -> "CacheStatsResponse":
        if stats is None:
            return cls(identity=identity, enabled=enabled, available=False)
        return cls(identity=identity, enabled=enabled, available=True, **stats.to_dict())


class InvalidateResponse(ApiModel):
    success: bool = True
    message: str

"""
HTTP endpoints.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dashscrape.api.schemas import (
    CacheStatsResponse,
    InvalidateResponse,
    ScrapeRequest,
    ScrapeResponse,
)
from dashscrape.errors import RequestValidationFailure


logger = logging.getLogger(__name__)

router = APIRouter()


def _services(request: Request):
    return request.app.state.services


def _render(model) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True)


@router.post("/scrape")
async def scrape(body: ScrapeRequest, request: Request):
    """Return dashboard data for an identity, from cache when fresh."""
    logger.info(f"Processing scrape request for {body.identity}")
    orchestrator = _services(request).orchestrator

    try:
        outcome = await orchestrator.fetch(
            body.identity,
            body.credentials.to_credentials(),
            use_cache=not body.refresh,
        )
    except ValueError as e:
        raise RequestValidationFailure(str(e))

    response = ScrapeResponse.from_outcome(outcome)
    return JSONResponse(status_code=outcome.status_code, content=_render(response))


@router.delete("/cache/{identity}")
async def invalidate_cache(identity: str, request: Request):
    await _services(request).orchestrator.invalidate(identity)
    return _render(InvalidateResponse(message=f"Cache cleared for {identity}"))


@router.get("/cache/{identity}/stats")
async def cache_stats(identity: str, request: Request):
    orchestrator = _services(request).orchestrator
    stats = await orchestrator.cache_stats(identity)
    return _render(CacheStatsResponse.from_stats(identity, orchestrator.cache_enabled, stats))


@router.get("/health")
async def health(request: Request):
    return await _services(request).health.report()

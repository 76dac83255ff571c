"""
FastAPI application factory.

Wires the cache, browser pool, executor and orchestrator together for the
lifetime of the app and installs the error handlers and timing middleware.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dashscrape import __version__
from dashscrape.api.routes import router
from dashscrape.browser import BrowserPool, ScrapeExecutor
from dashscrape.cache import CacheStore
from dashscrape.config import Settings, get_settings
from dashscrape.errors import DashscrapeError, RequestValidationFailure
from dashscrape.health import HealthReporter
from dashscrape.orchestrator import ScrapeOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived components shared by all requests."""

    cache: CacheStore
    pool: BrowserPool
    executor: ScrapeExecutor
    orchestrator: ScrapeOrchestrator
    health: HealthReporter


async def build_services(settings: Settings) -> Services:
    """Connect the cache, start the pool and assemble the orchestrator."""
    cache = CacheStore(settings.cache)
    await cache.connect()

    pool = BrowserPool(settings.pool)
    await pool.start()

    executor = ScrapeExecutor(settings.scrape)
    orchestrator = ScrapeOrchestrator(
        cache,
        pool,
        executor,
        cache_enabled=cache.enabled,
        ttl_seconds=settings.cache.ttl_seconds,
        acquire_timeout=settings.pool.acquire_timeout,
        transient_retries=settings.scrape.transient_retries,
    )
    health = HealthReporter(pool, cache, orchestrator)

    return Services(
        cache=cache,
        pool=pool,
        executor=executor,
        orchestrator=orchestrator,
        health=health,
    )


async def close_services(services: Services) -> None:
    await services.orchestrator.close()
    await services.pool.shutdown()
    await services.cache.close()


def _sanitize_errors(errors) -> list:
    # Drop echoed input so credentials never end up in a response body.
    return [
        {k: v for k, v in error.items() if k not in ("input", "ctx")}
        for error in errors
    ]


def create_app(
    settings: Settings | None = None,
    services: Services | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Service configuration (defaults from environment)
        services: Pre-built components; when given, the app neither starts
            nor stops them
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        try:
            logger.info("Initializing application...")
            app.state.services = services or await build_services(settings)
            yield
        finally:
            logger.info("Shutting down application...")
            current = getattr(app.state, "services", None)
            if owned and current is not None:
                await close_services(current)

    app = FastAPI(
        title="dashscrape",
        description="Cache-aware dashboard scraping service",
        version=__version__,
        lifespan=lifespan,
    )

    if services is not None:
        app.state.services = services

    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{time.perf_counter() - start_time:.4f}"
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error = RequestValidationFailure(
            "Invalid request",
            errors=jsonable_encoder(_sanitize_errors(exc.errors())),
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(DashscrapeError)
    async def dashscrape_exception_handler(request: Request, exc: DashscrapeError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=DashscrapeError("An unexpected error occurred").to_dict(),
        )

    app.include_router(router)
    return app

"""
Scrape Executor Module

Drives one leased browser through portal login and dashboard extraction for
one identity. Each run gets its own browser context, so cookies and storage
never leak between identities sharing a pooled browser.
"""

import asyncio
import logging
import time
from typing import Any, Callable
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright_stealth import Stealth

from dashscrape.browser.fingerprints import context_options
from dashscrape.browser.pool import PoolSlot
from dashscrape.config import ScrapeConfig
from dashscrape.errors import (
    AuthFailure,
    NavigationTimeout,
    ParseFailure,
    ScrapeError,
    TransientNetworkError,
)
from dashscrape.models import Credentials, DashboardData
from dashscrape.parsing import parse_dashboard


logger = logging.getLogger(__name__)

UNAVAILABLE_MARKERS = ("Service Unavailable", "HTTP Error 503", "502 Bad Gateway")


class ScrapeExecutor:
    """
    Authenticated dashboard scraper.

    Features:
    - Fresh browser context per run with a desktop fingerprint and stealth patches
    - Resource blocking once logged in (images, fonts, media, analytics)
    - Typed failures: AuthFailure, NavigationTimeout, ParseFailure, TransientNetworkError
    - Overall wall-clock timeout

    Example:
        executor = ScrapeExecutor()
        async with pool.lease() as slot:
            data = await executor.run(slot, "admin-1", Credentials("70123456", "secret"))
    """

    def __init__(
        self,
        config: ScrapeConfig | None = None,
        parser: Callable[[str], DashboardData] | None = None,
        stealth: Any = None,
    ):
        """
        Initialize the executor.

        Args:
            config: Scrape configuration (defaults from environment)
            parser: Pure function turning dashboard HTML into structured data
            stealth: Object with ``apply_stealth_async(context)``
        """
        self._config = config or ScrapeConfig()
        self._parser = parser or parse_dashboard
        self._stealth = stealth or Stealth()

    @property
    def timeout(self) -> float:
        return self._config.timeout

    async def run(
        self,
        slot: PoolSlot,
        identity: str,
        credentials: Credentials,
    ) -> DashboardData:
        """
        Scrape the dashboard for one identity.

        Raises:
            NavigationTimeout: The run exceeded the wall-clock limit
            AuthFailure, ParseFailure, TransientNetworkError: Scrape-domain failures
        """
        start = time.time()
        try:
            data = await asyncio.wait_for(
                self._run(slot.browser, identity, credentials),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError:
            raise NavigationTimeout(
                f"Scrape for {identity} exceeded {self._config.timeout:.0f}s"
            ) from None

        logger.info(f"Scraped {identity} on slot {slot.slot_id} in {time.time() - start:.2f}s")
        return data

    async def _run(self, browser: Any, identity: str, credentials: Credentials) -> DashboardData:
        context = await browser.new_context(**context_options())
        try:
            await self._stealth.apply_stealth_async(context)
            page = await context.new_page()
            page.set_default_navigation_timeout(self._config.navigation_timeout)

            blocking = {"enabled": False}

            async def handle_route(route):
                if blocking["enabled"] and self._should_block_request(route):
                    await route.abort()
                else:
                    await route.continue_()

            await page.route("**/*", handle_route)

            html = await self._navigate(page, identity, credentials, blocking)
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context for {identity}: {e}")

        return self._parse(identity, html)

    async def _navigate(
        self,
        page: Any,
        identity: str,
        credentials: Credentials,
        blocking: dict,
    ) -> str:
        """Login and load the dashboard, mapping Playwright errors to the taxonomy."""
        try:
            await self._login(page, identity, credentials)
            blocking["enabled"] = True
            return await self._load_dashboard(page, identity)
        except ScrapeError:
            raise
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Navigation timed out for {identity}: {e}") from e
        except PlaywrightError as e:
            if "net::" in str(e):
                raise TransientNetworkError(f"Network error for {identity}: {e}") from e
            raise

    def _on_login_page(self, url: str) -> bool:
        login_path = urlparse(self._config.login_url).path.rstrip("/")
        return urlparse(url).path.rstrip("/") == login_path

    async def _login(self, page: Any, identity: str, credentials: Credentials) -> None:
        logger.debug(f"Logging in for {identity}")
        response = await page.goto(self._config.login_url, wait_until="domcontentloaded")

        if response is not None and response.status >= 500:
            raise TransientNetworkError(f"Login page returned HTTP {response.status}")

        body = await page.text_content("body") or ""
        if any(marker in body for marker in UNAVAILABLE_MARKERS):
            raise TransientNetworkError("Login page reports service unavailable")

        await page.fill(self._config.username_selector, credentials.username)
        await page.fill(self._config.password_selector, credentials.password)
        await page.click(self._config.submit_selector)

        try:
            await page.wait_for_url(
                lambda url: not self._on_login_page(url),
                timeout=self._config.navigation_timeout,
                wait_until="domcontentloaded",
            )
        except PlaywrightTimeoutError:
            if await page.is_visible(self._config.login_error_selector):
                raise AuthFailure("Portal rejected the credentials") from None
            raise AuthFailure("Still on the login page after submitting credentials") from None

    async def _load_dashboard(self, page: Any, identity: str) -> str:
        # Most logins redirect straight to the dashboard
        if page.url.rstrip("/") != self._config.dashboard_url.rstrip("/"):
            await page.goto(self._config.dashboard_url, wait_until="domcontentloaded")

        if self._on_login_page(page.url):
            raise AuthFailure("Session was not accepted by the dashboard")

        try:
            await page.wait_for_selector(
                self._config.ready_selector,
                timeout=self._config.ready_timeout,
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Dashboard never became ready for {identity}") from e

        return await page.content()

    def _parse(self, identity: str, html: str) -> DashboardData:
        try:
            data = self._parser(html)
        except Exception as e:
            raise ParseFailure(f"Could not parse dashboard for {identity}: {e}") from e
        if not data:
            raise ParseFailure(f"Dashboard for {identity} produced no data")
        return data

    def _should_block_request(self, route) -> bool:
        """Check if a request should be blocked."""
        request = route.request

        if self._config.block_images and request.resource_type == "image":
            return not request.url.startswith("data:")
        if self._config.block_fonts and request.resource_type == "font":
            return True
        if self._config.block_media and request.resource_type == "media":
            return True

        if self._config.block_analytics:
            url = request.url.lower()
            for blocked in self._config.blocked_domains:
                if blocked in url:
                    return True

        return False

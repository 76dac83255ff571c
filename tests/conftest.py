"""
Shared fakes for the browser, portal page and Redis client.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from redis.exceptions import ConnectionError as RedisConnectionError

from dashscrape.config import CacheConfig, PoolConfig, ScrapeConfig


DASHBOARD_HTML = """
<html><body>
  <div id="consumption-container">
    <div class="text-center"><h2 class="white">$12.50</h2></div>
  </div>
  <div id="consumptions">
    <div class="circle">
      <div class="c100 p40 small"><span>8 / 20 GB</span></div>
      <div class="title">Mobile Plan<br/><span class="light">70123456</span></div>
    </div>
    <div class="circle">
      <div class="c100 p25 small"><span>5 / 20 GB</span></div>
      <div class="title">Total Bundle</div>
    </div>
  </div>
</body></html>
"""

LOGIN_HTML = "<html><body><form><input id='Username'/><input id='Password'/></form></body></html>"


# =============================================================================
# Redis
# =============================================================================

class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (string commands only)."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.values: Dict[str, str] = {}
        self.expiry: Dict[str, float] = {}
        self.failing = False
        self.closed = False
        self.commands: List[str] = []

    def _check(self, command: str) -> None:
        self.commands.append(command)
        if self.failing:
            raise RedisConnectionError("connection refused")

    def _expire_stale(self, key: str) -> None:
        expires_at = self.expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self.values.pop(key, None)
            self.expiry.pop(key, None)

    async def ping(self) -> bool:
        self._check("PING")
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check("GET")
        self._expire_stale(key)
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._check("SET")
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = self._clock() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def ttl(self, key: str) -> int:
        self._check("TTL")
        self._expire_stale(key)
        if key not in self.values:
            return -2
        if key not in self.expiry:
            return -1
        return int(self.expiry[key] - self._clock())

    async def delete(self, *keys: str) -> int:
        self._check("DEL")
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Browser
# =============================================================================

class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status


class FakeRequest:
    def __init__(self, url: str, resource_type: str = "document"):
        self.url = url
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, url: str, resource_type: str = "document"):
        self.request = FakeRequest(url, resource_type)
        self.aborted = False
        self.continued = False

    async def abort(self) -> None:
        self.aborted = True

    async def continue_(self) -> None:
        self.continued = True


class FakePage:
    """
    Scriptable portal page.

    Submitting the login form with ``valid_password`` moves to the dashboard,
    anything else stays on the login page.
    """

    def __init__(
        self,
        config: ScrapeConfig,
        valid_password: str = "secret",
        dashboard_html: str = DASHBOARD_HTML,
        login_status: int = 200,
        login_body: str = LOGIN_HTML,
        ready: bool = True,
        error_visible: bool = False,
        goto_error: Optional[BaseException] = None,
        goto_delay: float = 0.0,
    ):
        self._config = config
        self.valid_password = valid_password
        self.dashboard_html = dashboard_html
        self.login_status = login_status
        self.login_body = login_body
        self.ready = ready
        self.error_visible = error_visible
        self.goto_error = goto_error
        self.goto_delay = goto_delay

        self.url = "about:blank"
        self.visited: List[str] = []
        self.filled: Dict[str, str] = {}
        self.route_handler = None
        self.navigation_timeout: Optional[int] = None

    def set_default_navigation_timeout(self, timeout: int) -> None:
        self.navigation_timeout = timeout

    async def route(self, pattern: str, handler) -> None:
        self.route_handler = handler

    async def goto(self, url: str, wait_until: str = "load") -> FakeResponse:
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        if self.goto_error is not None:
            raise self.goto_error
        self.visited.append(url)
        if url == self._config.dashboard_url and self.url != url:
            # Unauthenticated visits bounce back to login
            if self.filled.get(self._config.password_selector) != self.valid_password:
                self.url = self._config.login_url
                return FakeResponse(200)
        self.url = url
        if url == self._config.login_url:
            return FakeResponse(self.login_status)
        return FakeResponse(200)

    async def text_content(self, selector: str) -> str:
        return self.login_body

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        if self.filled.get(self._config.password_selector) == self.valid_password:
            self.url = self._config.dashboard_url

    async def wait_for_url(self, predicate, timeout: float = 0, wait_until: str = "load") -> None:
        if not predicate(self.url):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for URL")

    async def is_visible(self, selector: str) -> bool:
        return self.error_visible

    async def wait_for_selector(self, selector: str, timeout: float = 0) -> None:
        if not self.ready:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def content(self) -> str:
        return self.dashboard_html


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False
        self.options: Dict[str, Any] = {}

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """Stand-in for a Playwright Browser."""

    def __init__(self, page_factory: Optional[Callable[[], FakePage]] = None):
        self.page_factory = page_factory
        self.connected = True
        self.closed = False
        self.contexts: List[FakeContext] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **options) -> FakeContext:
        context = FakeContext(self.page_factory())
        context.options = options
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.connected = False
        self.closed = True


class FakeLauncher:
    """Launches FakeBrowsers, optionally failing the first ``fail_first`` launches."""

    def __init__(self, fail_first: int = 0, page_factory=None):
        self.fail_first = fail_first
        self.page_factory = page_factory
        self.browsers: List[FakeBrowser] = []
        self.attempts = 0
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def launch(self) -> FakeBrowser:
        self.attempts += 1
        if self.attempts <= self.fail_first:
            raise PlaywrightError("Browser closed unexpectedly")
        browser = FakeBrowser(self.page_factory)
        self.browsers.append(browser)
        return browser

    async def stop(self) -> None:
        self.stopped = True


class FakeStealth:
    def __init__(self):
        self.applied: List[Any] = []

    async def apply_stealth_async(self, context) -> None:
        self.applied.append(context)


class FakeExecutor:
    """
    Records calls and returns scripted results.

    ``results`` is consumed one per call; an exception instance is raised,
    anything else returned. When exhausted, ``default`` is returned.
    When ``gate`` is set, each call waits on it before finishing.
    """

    def __init__(self, results: Optional[list] = None, default: Any = None, delay: float = 0.0):
        self.results = list(results or [])
        self.default = default if default is not None else {"balance": "$12.50"}
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[str] = []
        self.slots: List[int] = []

    async def run(self, slot, identity, credentials):
        self.calls.append(identity)
        self.slots.append(slot.slot_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, BaseException):
            raise result
        return result


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_client(clock):
    return FakeRedis(clock)


@pytest.fixture
def cache_config():
    return CacheConfig(url="redis://localhost:6379/0", token="token", ttl_seconds=300)


@pytest.fixture
def pool_config():
    return PoolConfig(max_size=2, acquire_timeout=2.0, launch_retries=3, launch_backoff=0.0)


@pytest.fixture
def scrape_config():
    return ScrapeConfig(timeout=5.0, navigation_timeout=1000, ready_timeout=1000)

"""
Configuration module for dashscrape.

Uses Pydantic Settings for type-safe configuration with environment variable support.
"""

from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheConfig(BaseSettings):
    """Result cache (Redis) configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHSCRAPE_CACHE_")

    url: str | None = Field(default=None, description="Redis endpoint, e.g. rediss://host:6379/0")
    token: str | None = Field(default=None, description="Redis password / access token")
    ttl_seconds: int = Field(default=300, gt=0, description="Cache entry time-to-live")
    key_prefix: str = Field(default="user", description="Namespace root for cache keys")

    socket_timeout: float = Field(default=2.0, description="Per-command socket timeout (seconds)")
    startup_ping_timeout: float = Field(default=3.0, description="Startup reachability check timeout")

    @property
    def enabled(self) -> bool:
        """Caching is only enabled when both endpoint and credential are present."""
        return bool(self.url and self.token)


class PoolConfig(BaseSettings):
    """Browser pool configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHSCRAPE_POOL_")

    max_size: int = Field(default=2, ge=1, description="Maximum concurrent browser processes")
    acquire_timeout: float = Field(default=60.0, description="Seconds to wait for a free slot")
    prewarm: int = Field(default=0, ge=0, description="Browsers to launch at startup")

    launch_retries: int = Field(default=3, ge=1, description="Launch attempts before giving up")
    launch_backoff: float = Field(default=1.0, description="Linear backoff between launch attempts")
    max_uses_per_slot: int = Field(default=100, ge=1, description="Recycle a browser after this many leases")

    headless: bool = Field(default=True, description="Run browsers in headless mode")
    launch_args: list[str] = Field(
        default=[
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-blink-features=AutomationControlled",
            "--disable-gpu",
            "--disable-extensions",
            "--disable-background-networking",
        ],
        description="Extra Chromium command line switches"
    )


class ScrapeConfig(BaseSettings):
    """Portal navigation and extraction configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHSCRAPE_SCRAPE_")

    timeout: float = Field(default=120.0, description="Wall-clock limit for one scrape (seconds)")
    navigation_timeout: int = Field(default=30000, description="Per-navigation timeout in milliseconds")
    ready_timeout: int = Field(default=20000, description="Dashboard ready selector timeout in milliseconds")
    transient_retries: int = Field(default=1, ge=0, description="Retries after a transient network error")

    # Portal
    login_url: str = Field(default="https://portal.example.com/en/account/login")
    dashboard_url: str = Field(default="https://portal.example.com/en/account")
    username_selector: str = Field(default="#Username")
    password_selector: str = Field(default="#Password")
    submit_selector: str = Field(default="button[type='submit']")
    login_error_selector: str = Field(default=".validation-summary-errors, .field-validation-error")
    ready_selector: str = Field(default="#consumption-container")

    # Resource blocking (applied after login only)
    block_images: bool = Field(default=True, description="Block image requests")
    block_fonts: bool = Field(default=True, description="Block font requests")
    block_media: bool = Field(default=True, description="Block media requests")
    block_analytics: bool = Field(default=True, description="Block analytics/tracking")
    blocked_domains: list[str] = Field(
        default=[
            "google-analytics.com",
            "googletagmanager.com",
            "facebook.net",
            "facebook.com/tr",
            "doubleclick.net",
            "googleadservices.com",
        ],
        description="Domains to block"
    )


class Settings(BaseSettings):
    """Main service configuration aggregating all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="DASHSCRAPE_",
        env_nested_delimiter="__",
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)

    # Server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="Bind port")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()

"""Browser module - pooled Chromium processes and the dashboard scrape run."""

from .pool import BrowserPool, PoolSlot, SlotState
from .executor import ScrapeExecutor

__all__ = ["BrowserPool", "PoolSlot", "SlotState", "ScrapeExecutor"]

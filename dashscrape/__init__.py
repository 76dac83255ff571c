"""
dashscrape - A cache-aware dashboard scraping service.

This package provides:
- Redis-backed result cache with per-entry expiry
- Bounded, self-healing pool of headless Chromium browsers
- Login and dashboard extraction against the customer portal
- Per-identity request coalescing
- HTTP API with health reporting
"""

__version__ = "1.0.0"

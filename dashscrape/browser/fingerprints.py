"""
Browser fingerprints for scrape contexts.

Every scrape runs in a fresh browser context; this module picks the user agent,
viewport and matching Client Hints for it. Only desktop Chromium profiles are
listed because the pool launches Chromium.
"""

import random
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class BrowserProfile:
    """A Chromium fingerprint with matching headers."""

    user_agent: str
    sec_ch_ua: str
    sec_ch_ua_platform: str
    accept_language: str = "en-US,en;q=0.9"
    width: int = 1920
    height: int = 1080


CHROMIUM_PROFILES = [
    BrowserProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        sec_ch_ua='"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        sec_ch_ua_platform='"Windows"',
    ),
    BrowserProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        sec_ch_ua='"Not_A Brand";v="8", "Chromium";v="119", "Google Chrome";v="119"',
        sec_ch_ua_platform='"Windows"',
    ),
    BrowserProfile(
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        sec_ch_ua='"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        sec_ch_ua_platform='"macOS"',
        width=1440,
        height=900,
    ),
    BrowserProfile(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
        sec_ch_ua='"Not_A Brand";v="8", "Chromium";v="120", "Microsoft Edge";v="120"',
        sec_ch_ua_platform='"Windows"',
    ),
]


def pick_profile() -> BrowserProfile:
    """Random desktop Chromium profile."""
    return random.choice(CHROMIUM_PROFILES)


def context_options(profile: BrowserProfile | None = None) -> Dict[str, Any]:
    """
    Keyword arguments for ``Browser.new_context``.

    Args:
        profile: Fingerprint to apply (random if None)

    Returns:
        Dict with user_agent, viewport, locale and extra_http_headers
    """
    profile = profile or pick_profile()
    return {
        "user_agent": profile.user_agent,
        "viewport": {"width": profile.width, "height": profile.height},
        "locale": "en-US",
        "extra_http_headers": {
            "Accept-Language": profile.accept_language,
            "Sec-Ch-Ua": profile.sec_ch_ua,
            "Sec-Ch-Ua-Mobile": "?0",
            "Sec-Ch-Ua-Platform": profile.sec_ch_ua_platform,
        },
    }

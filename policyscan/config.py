"""Factory functions for Crawl4AI browser and run configurations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from crawl4ai import BrowserConfig, CrawlerRunConfig
from crawl4ai.async_configs import CacheMode

from .sites import SiteOverride

LOGGER = logging.getLogger(__name__)

# Wait conditions tried in order when a navigation fails.
PROGRESSIVE_WAIT_STRATEGIES: Tuple[str, ...] = ("networkidle", "domcontentloaded", "load")

DEFAULT_TIMEOUT = 30.0
DIRECT_GUESS_TIMEOUT = 10.0

COOKIE_ACCEPT_SELECTORS: List[str] = [
    "button[id*='accept']",
    "button[class*='accept']",
    "button[aria-label*='accept']",
    "#onetrust-accept-btn-handler",
    ".cky-btn-accept",
]

_DISMISS_COOKIES_JS = """
(() => {
    const selectors = %s;
    for (const selector of selectors) {
        const button = document.querySelector(selector);
        if (button) { button.click(); return true; }
    }
    return false;
})();
"""

_SCROLL_JS = "window.scrollTo(0, document.body.scrollHeight);"


@dataclass(frozen=True)
class NavigationOptions:
    """How a single page load should be performed."""

    wait_until: str = "networkidle"
    timeout: float = DEFAULT_TIMEOUT
    extra_wait: float = 0.0
    scroll_to_bottom: bool = False
    dismiss_cookie_banner: bool = False
    user_agent: Optional[str] = None
    text_mode: bool = False
    headless: bool = True
    cache_mode: Optional[str] = None

    @classmethod
    def from_override(cls, override: SiteOverride, **kwargs: Any) -> "NavigationOptions":
        """Options for a site; keyword arguments win over the override."""
        values: Dict[str, Any] = {
            "wait_until": override.wait_until,
            "extra_wait": override.extra_wait,
            "scroll_to_bottom": override.scroll_to_bottom,
            "dismiss_cookie_banner": override.dismiss_cookie_banner,
            "user_agent": override.user_agent,
            "text_mode": override.text_mode,
        }
        values.update(kwargs)
        return cls(**values)

    def with_wait(self, wait_until: str) -> "NavigationOptions":
        return replace(self, wait_until=wait_until)


def _convert_cache_mode(value: Optional[str], default: CacheMode) -> CacheMode:
    if not value:
        return default
    candidate = value.strip().replace("CacheMode.", "")
    try:
        return CacheMode[candidate.upper()]
    except KeyError:
        pass
    try:
        return CacheMode(candidate.lower())
    except ValueError:
        LOGGER.warning(
            "Unknown cache_mode '%s'; falling back to %s.", value, default.name
        )
        return default


def build_browser_config(options: Optional[NavigationOptions] = None) -> BrowserConfig:
    """Build a non-persistent BrowserConfig, isolated per loader."""
    options = options or NavigationOptions()
    kwargs: Dict[str, Any] = {
        "headless": options.headless,
        "use_persistent_context": False,
    }
    if options.user_agent:
        kwargs["user_agent"] = options.user_agent
    if options.text_mode:
        kwargs["text_mode"] = True
    return BrowserConfig(**kwargs)


def build_navigation_run_config(
    options: Optional[NavigationOptions] = None,
) -> CrawlerRunConfig:
    """RunConfig that returns the fully rendered HTML of one page."""
    options = options or NavigationOptions()
    scripts: List[str] = []
    if options.dismiss_cookie_banner:
        scripts.append(_DISMISS_COOKIES_JS % json.dumps(COOKIE_ACCEPT_SELECTORS))
    if options.scroll_to_bottom:
        scripts.append(_SCROLL_JS)

    config = CrawlerRunConfig(
        verbose=False,
        wait_until=options.wait_until,
        page_timeout=int(options.timeout * 1000),
        delay_before_return_html=max(options.extra_wait, 0.5),
        cache_mode=_convert_cache_mode(options.cache_mode, CacheMode.BYPASS),
        remove_overlay_elements=options.dismiss_cookie_banner,
        scan_full_page=options.scroll_to_bottom,
    )
    if scripts:
        config.js_code = scripts
    return config

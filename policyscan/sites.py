"""Per-site navigation overrides and host normalization."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, FrozenSet, Mapping, Optional, Tuple
from urllib.parse import urlparse

import tldextract

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)


@dataclass(frozen=True)
class SiteOverride:
    """Navigation tweaks for a site that defeats the default flow."""

    wait_until: str = "networkidle"
    extra_wait: float = 0.0
    selectors: Tuple[str, ...] = ()
    dismiss_cookie_banner: bool = False
    scroll_to_bottom: bool = False
    user_agent: Optional[str] = None
    text_mode: bool = False  # crawl4ai text mode: no images or heavy media


# Used for any site without its own entry.
DEFAULT_OVERRIDE = SiteOverride(
    wait_until="domcontentloaded",
    extra_wait=2.0,
    dismiss_cookie_banner=True,
    scroll_to_bottom=True,
)

SITE_OVERRIDES: Dict[str, SiteOverride] = {
    "amazon.com": SiteOverride(
        wait_until="domcontentloaded",
        extra_wait=3.0,
        selectors=(
            "a[href*='privacy']",
            "a[href*='privacyNotice']",
            "[data-action*='privacy']",
        ),
        scroll_to_bottom=True,
    ),
    "youtube.com": SiteOverride(
        wait_until="networkidle",
        extra_wait=5.0,
        selectors=("a[href*='t/privacy']", "a[href*='policies']"),
        dismiss_cookie_banner=True,
    ),
    "reddit.com": SiteOverride(
        wait_until="domcontentloaded",
        extra_wait=4.0,
        selectors=("a[href*='policies/privacy']", "a[href*='redditinc.com']"),
        user_agent=DESKTOP_USER_AGENT,
    ),
    "booking.com": SiteOverride(
        wait_until="networkidle",
        extra_wait=3.0,
        selectors=("a[href*='privacy']", "a[href*='terms']"),
        scroll_to_bottom=True,
    ),
    "expedia.com": SiteOverride(
        wait_until="load",
        extra_wait=4.0,
        selectors=("a[href*='privacy']", "a[href*='support']"),
    ),
    "tripadvisor.com": SiteOverride(
        wait_until="domcontentloaded",
        extra_wait=3.0,
        selectors=("a[href*='Privacy']", "a[href*='terms']"),
    ),
    "twitch.tv": SiteOverride(
        wait_until="networkidle",
        extra_wait=5.0,
        selectors=("a[href*='privacy']", "a[href*='legal']"),
    ),
    "epicgames.com": SiteOverride(
        wait_until="networkidle",
        extra_wait=4.0,
        selectors=("a[href*='privacy']", "a[href*='tos']"),
        scroll_to_bottom=True,
    ),
    "stackoverflow.com": SiteOverride(
        wait_until="domcontentloaded",
        extra_wait=2.0,
        selectors=("a[href*='privacy']", "a[href*='legal']", ".js-footer-link"),
    ),
    "cnn.com": SiteOverride(
        wait_until="domcontentloaded",
        extra_wait=5.0,
        selectors=("a[href*='privacy']", "a[href*='terms']"),
        text_mode=True,
    ),
}

# Hosts whose pages render their text client-side.
KNOWN_DYNAMIC_DOMAINS: FrozenSet[str] = frozenset(
    {
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "linkedin.com",
        "tiktok.com",
        "reddit.com",
        "youtube.com",
        "twitch.tv",
        "discord.com",
        "spotify.com",
        "netflix.com",
        "epicgames.com",
        "pinterest.com",
        "snapchat.com",
    }
)


def normalize_host(host: Optional[str]) -> str:
    """Lowercase a hostname, dropping the port and a leading ``www.``."""
    if not host:
        return ""
    host = host.split(":")[0].lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def host_of(url: str) -> str:
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return normalize_host(parsed.hostname or parsed.netloc)


@lru_cache(maxsize=256)
def registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = tldextract.extract(host)
    if not extracted.domain or not extracted.suffix:
        return host
    domain = ".".join(part for part in (extracted.domain, extracted.suffix) if part)
    return domain or host


def domain_matches(host: str, domains: FrozenSet[str]) -> bool:
    """True if *host* or its registrable domain is listed in *domains*."""
    host = normalize_host(host)
    if not host:
        return False
    if host in domains:
        return True
    return registrable_domain(host) in domains


def override_for(
    url: str,
    overrides: Mapping[str, SiteOverride] = SITE_OVERRIDES,
    default: SiteOverride = DEFAULT_OVERRIDE,
) -> SiteOverride:
    """Return the override registered for *url*'s site, else *default*."""
    host = host_of(url)
    if host in overrides:
        return overrides[host]
    registrable = registrable_domain(host)
    if registrable and registrable in overrides:
        return overrides[registrable]
    return default

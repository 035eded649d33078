"""SearXNG lookup for a site's policy page.

Environment variables are read at call time (inside ``search_async``) so
tests can monkeypatch them and late ``.env`` loading works.

Public API::

    from policyscan.search import find_policy_url, search_async

    url = await find_policy_url("example.com")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .patterns import LINK_PATTERN_SET
from .sites import host_of, registrable_domain

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARXNG_URL = "http://localhost:8888"


@dataclass(slots=True)
class SearchResultItem:
    """A single search hit."""

    title: str
    url: str
    content: str = ""
    engine: str = ""
    score: float = 0.0


@dataclass(slots=True)
class SearchResult:
    """Structured response from a SearXNG query."""

    query: str
    results: List[SearchResultItem] = field(default_factory=list)

    @property
    def number_of_results(self) -> int:
        return len(self.results)


class SearchError(Exception):
    """Raised when the SearXNG search fails."""

    def __init__(self, message: str, query: str = ""):
        self.query = query
        super().__init__(message)


_KNOWN_ITEM_FIELDS = frozenset({"title", "url", "content", "engine", "score"})


def _get_searxng_client(
    base_url: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    timeout: float = 30.0,
) -> httpx.AsyncClient:
    """Create an httpx async client for SearXNG with optional basic auth.

    Parameters fall back to environment variables when *None*.
    """
    url = base_url or os.getenv("SEARXNG_URL", DEFAULT_SEARXNG_URL)
    user = username or os.getenv("SEARXNG_USERNAME")
    pw = password or os.getenv("SEARXNG_PASSWORD")

    auth = None
    if user and pw:
        auth = httpx.BasicAuth(user, pw)

    return httpx.AsyncClient(
        base_url=url,
        auth=auth,
        headers={"Accept": "application/json"},
        timeout=timeout,
    )


def _raw_to_item(raw: Dict[str, Any]) -> SearchResultItem:
    known = {k: raw[k] for k in _KNOWN_ITEM_FIELDS if k in raw}
    known.setdefault("title", "")
    known.setdefault("url", "")
    return SearchResultItem(**known)


def policy_query(domain: str) -> str:
    """Query restricting results to *domain*'s policy pages."""
    return f"site:{domain} privacy policy OR terms of service"


async def search_async(
    query: str,
    *,
    language: str = "en",
    max_results: int = 10,
    searxng_url: Optional[str] = None,
    searxng_username: Optional[str] = None,
    searxng_password: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> SearchResult:
    """Search the web using SearXNG.

    Args:
        query: Search query string.
        language: Language code (default: ``'en'``).
        max_results: Maximum results 1-50 (default: 10).
        searxng_url: Override ``SEARXNG_URL`` env var.
        searxng_username: Override ``SEARXNG_USERNAME`` env var.
        searxng_password: Override ``SEARXNG_PASSWORD`` env var.
        client: Pre-configured client, mainly for tests.

    Raises:
        SearchError: On authentication failure, HTTP error, or network error.
    """
    params: Dict[str, Any] = {
        "q": query,
        "format": "json",
        "language": language,
        "safesearch": 0,
        "pageno": 1,
    }

    try:
        if client is not None:
            response = await client.get("/search", params=params)
        else:
            async with _get_searxng_client(
                base_url=searxng_url,
                username=searxng_username,
                password=searxng_password,
            ) as owned:
                response = await owned.get("/search", params=params)
        response.raise_for_status()
        data = response.json()

    except httpx.HTTPStatusError as exc:
        if exc.response.status_code == 401:
            raise SearchError(
                "Authentication failed. Check SEARXNG_USERNAME and SEARXNG_PASSWORD.",
                query=query,
            ) from exc
        raise SearchError(
            f"SearXNG API error: {exc.response.status_code}", query=query
        ) from exc

    except httpx.RequestError as exc:
        raise SearchError(f"Request failed: {exc}", query=query) from exc

    except ValueError as exc:
        raise SearchError("SearXNG returned invalid JSON", query=query) from exc

    max_results = min(max(1, max_results), 50)
    raw_results = data.get("results", [])[:max_results]
    items = [_raw_to_item(r) for r in raw_results if isinstance(r, dict)]
    return SearchResult(query=data.get("query", query), results=items)


async def find_policy_url(
    domain: str,
    **search_kwargs: Any,
) -> Optional[str]:
    """
    First search hit on *domain* that looks like a policy page.

    Falls back to the first on-domain hit when none matches a policy
    pattern, and returns None when the search finds nothing on-domain.
    """
    host = host_of(domain)
    target = registrable_domain(host) or host
    result = await search_async(policy_query(target), **search_kwargs)

    on_domain = [
        item
        for item in result.results
        if item.url and registrable_domain(host_of(item.url)) == target
    ]
    LOGGER.debug(
        "Search for %s returned %d hit(s), %d on-domain",
        target,
        result.number_of_results,
        len(on_domain),
    )
    for item in on_domain:
        if LINK_PATTERN_SET.matches(item.url) or LINK_PATTERN_SET.matches(item.title):
            return item.url
    return on_domain[0].url if on_domain else None

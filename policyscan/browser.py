"""Headless page loading on top of Crawl4AI's AsyncWebCrawler."""

from __future__ import annotations

from contextlib import AsyncExitStack
import logging
from typing import Any, Callable, Iterable, Optional

from crawl4ai import AsyncWebCrawler
from crawl4ai.models import CrawlResult

from .config import (
    PROGRESSIVE_WAIT_STRATEGIES,
    NavigationOptions,
    build_browser_config,
    build_navigation_run_config,
)
from .document import LoadedPage
from .errors import NavigationFailure

LOGGER = logging.getLogger(__name__)

CrawlerFactory = Callable[..., Any]


class PageLoader:
    """
    One isolated browser, opened on enter and closed on exit.

    A loader is never shared between requests; create one per request (or
    per fallback sequence) with ``async with PageLoader(...) as loader``.
    """

    def __init__(
        self,
        options: Optional[NavigationOptions] = None,
        *,
        crawler_factory: CrawlerFactory = AsyncWebCrawler,
    ):
        self.options = options or NavigationOptions()
        self._crawler_factory = crawler_factory
        self._stack: Optional[AsyncExitStack] = None
        self._crawler: Any = None

    async def __aenter__(self) -> "PageLoader":
        stack = AsyncExitStack()
        try:
            self._crawler = await stack.enter_async_context(
                self._crawler_factory(config=build_browser_config(self.options))
            )
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        stack, self._stack = self._stack, None
        self._crawler = None
        if stack is not None:
            await stack.aclose()

    async def load(
        self, url: str, options: Optional[NavigationOptions] = None
    ) -> LoadedPage:
        """
        Navigate to *url* and return the rendered page.

        Raises:
            NavigationFailure: If the browser reports an error or no result.
        """
        if self._crawler is None:
            raise RuntimeError("PageLoader must be used as an async context manager")
        run_config = build_navigation_run_config(options or self.options)
        try:
            container = await self._crawler.arun(url=url, config=run_config)
        except Exception as exc:
            raise NavigationFailure(url, str(exc)) from exc

        result = _first_result(container)
        if result is None:
            raise NavigationFailure(url, "Crawler returned no results")
        if not result.success:
            raise NavigationFailure(url, _derive_failure_reason(result))
        return page_from_result(url, result)

    async def load_with_retry(
        self,
        url: str,
        options: Optional[NavigationOptions] = None,
        wait_strategies: Iterable[str] = PROGRESSIVE_WAIT_STRATEGIES,
    ) -> LoadedPage:
        """Load *url*, relaxing the wait condition after each failure."""
        base = options or self.options
        last_error: Optional[NavigationFailure] = None
        for wait_until in wait_strategies:
            try:
                return await self.load(url, base.with_wait(wait_until))
            except NavigationFailure as exc:
                LOGGER.warning(
                    "Navigation to %s with wait_until=%s failed: %s",
                    url,
                    wait_until,
                    exc.reason,
                )
                last_error = exc
        if last_error is None:
            raise NavigationFailure(url, "No wait strategy configured")
        raise last_error


def _first_result(container: Any) -> Optional[CrawlResult]:
    if container is None:
        return None
    if isinstance(container, CrawlResult):
        return container
    try:
        return container[0]
    except (IndexError, TypeError, KeyError):
        return None


def page_from_result(request_url: str, result: CrawlResult) -> LoadedPage:
    """Convert a Crawl4AI CrawlResult into a LoadedPage."""
    metadata = result.metadata or {}
    return LoadedPage(
        request_url=request_url,
        final_url=str(result.redirected_url or result.url or request_url),
        html=result.html or result.cleaned_html or "",
        status_code=result.status_code,
        title=str(metadata.get("title") or ""),
    )


def _derive_failure_reason(result: CrawlResult) -> str:
    if result.error_message:
        return result.error_message
    metadata = result.metadata or {}
    status_code = result.status_code or metadata.get("status_code")
    if status_code:
        return f"HTTP {status_code}"
    return "Crawler returned no content"

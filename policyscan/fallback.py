"""Second-chance extraction for pages that render their text client-side."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Awaitable, Callable, FrozenSet, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .config import NavigationOptions
from .document import MIN_LINK_CONTENT_CHARS, ExtractedDocument, StrategyAttempt
from .errors import ContentTooShort, NavigationFailure
from .extractor import extract_document
from .sites import KNOWN_DYNAMIC_DOMAINS, domain_matches, host_of

LOGGER = logging.getLogger(__name__)

STRATEGY_NAME = "dynamic-content"
MARKER_PARAM = "policyscanExtraction"

LoaderFactory = Callable[[], AsyncContextManager[Any]]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class FallbackOutcome:
    """Result of a fallback sequence; ``document`` is None on exhaustion."""

    document: Optional[ExtractedDocument]
    attempts: Tuple[StrategyAttempt, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.document is not None


def with_marker(url: str) -> str:
    """Append the extraction marker query parameter to *url*."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != MARKER_PARAM]
    query.append((MARKER_PARAM, "true"))
    return urlunsplit(parts._replace(query=urlencode(query)))


class DynamicContentFallback:
    """
    Reload a page in an isolated browser and extract again, with retries.

    One browser context is provisioned per ``extract`` call, reused across
    its attempts and closed on every exit path.
    """

    def __init__(
        self,
        loader_factory: LoaderFactory,
        *,
        known_dynamic_domains: FrozenSet[str] = KNOWN_DYNAMIC_DOMAINS,
        attempts: int = 3,
        initial_wait: float = 2.0,
        retry_delay: float = 2.0,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
        allow_any_host: bool = False,
        sleep: Sleep = asyncio.sleep,
    ):
        self._loader_factory = loader_factory
        self.known_dynamic_domains = known_dynamic_domains
        self.max_attempts = max(1, attempts)
        self.initial_wait = initial_wait
        self.retry_delay = retry_delay
        self.minimum_chars = minimum_chars
        self.allow_any_host = allow_any_host
        self._sleep = sleep

    def is_known_dynamic(self, url: str) -> bool:
        if self.allow_any_host:
            return True
        return domain_matches(host_of(url), self.known_dynamic_domains)

    async def extract(self, url: str) -> FallbackOutcome:
        """
        Load *url* up to ``attempts`` times and extract its text.

        Returns as soon as one attempt yields adequate text. Navigation
        failures are recorded as failed attempts; other errors propagate
        after the browser context is closed.
        """
        target = with_marker(url)
        options = NavigationOptions(
            wait_until="domcontentloaded", extra_wait=self.initial_wait
        )
        attempts: List[StrategyAttempt] = []

        async with self._loader_factory() as loader:
            for number in range(1, self.max_attempts + 1):
                if number > 1:
                    await self._sleep(self.retry_delay)
                try:
                    page = await loader.load(target, options)
                except NavigationFailure as exc:
                    LOGGER.warning(
                        "Dynamic extraction attempt %d/%d for %s failed: %s",
                        number,
                        self.max_attempts,
                        url,
                        exc.reason,
                    )
                    attempts.append(
                        StrategyAttempt(
                            strategy_name=STRATEGY_NAME,
                            succeeded=False,
                            error=str(exc),
                            hint=exc.hint,
                            source_url=url,
                        )
                    )
                    continue

                document = extract_document(page.html, url)
                if document.is_adequate(self.minimum_chars):
                    LOGGER.info(
                        "Dynamic extraction succeeded for %s on attempt %d (%d chars)",
                        url,
                        number,
                        document.length_chars,
                    )
                    attempts.append(
                        StrategyAttempt(
                            strategy_name=STRATEGY_NAME,
                            succeeded=True,
                            result_document=document,
                            source_url=url,
                        )
                    )
                    return FallbackOutcome(document=document, attempts=tuple(attempts))

                short = ContentTooShort(url, document.length_chars, self.minimum_chars)
                LOGGER.info(
                    "Dynamic extraction attempt %d/%d: %s", number, self.max_attempts, short
                )
                attempts.append(
                    StrategyAttempt(
                        strategy_name=STRATEGY_NAME,
                        succeeded=False,
                        result_document=document,
                        error=str(short),
                        source_url=url,
                        hint=short.hint,
                    )
                )

        return FallbackOutcome(document=None, attempts=tuple(attempts))

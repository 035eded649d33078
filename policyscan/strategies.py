"""Discovery strategies tried in order by the resolver.

Each strategy exposes ``name`` and ``async attempt(target)`` returning one
StrategyAttempt. A strategy only finds and extracts a document; whether
the document is a real policy is decided by the resolver's validator.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import (
    Any,
    AsyncContextManager,
    Awaitable,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from .browser import PageLoader
from .classifier import DEFAULT_CLASSIFIER_WEIGHTS, ClassifierWeights, classify_document
from .config import DIRECT_GUESS_TIMEOUT, NavigationOptions
from .document import (
    MIN_CURRENT_PAGE_CHARS,
    MIN_LINK_CONTENT_CHARS,
    ExtractedDocument,
    LoadedPage,
    StrategyAttempt,
)
from .errors import (
    ContentTooShort,
    DynamicContentRequired,
    NavigationFailure,
    NoPolicyCandidate,
    PolicyScanError,
)
from .extractor import extract_document
from .fallback import DynamicContentFallback
from .links import (
    DEFAULT_SCORING_WEIGHTS,
    ScoringWeights,
    resolve_href,
    score_links,
    select_candidates,
)
from .patterns import LINK_PATTERN_SET
from .search import SearchError, find_policy_url
from .sites import (
    DEFAULT_OVERRIDE,
    SITE_OVERRIDES,
    SiteOverride,
    host_of,
    override_for,
)

LOGGER = logging.getLogger(__name__)

LoaderFactory = Callable[[NavigationOptions], AsyncContextManager[PageLoader]]
PolicySearch = Callable[[str], Awaitable[Optional[str]]]

DIRECT_GUESS_PATHS: Tuple[str, ...] = (
    "/privacy",
    "/privacy-policy",
    "/privacy.html",
    "/legal/privacy",
    "/policies/privacy",
    "/terms",
    "/legal",
)
DIRECT_GUESS_WWW_PATHS: Tuple[str, ...] = (
    "/privacy",
    "/privacy-policy",
    "/legal",
    "/terms",
)
SITEMAP_PATHS: Tuple[str, ...] = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap")

MAX_CANDIDATES = 3
MAX_CHILD_SITEMAPS = 10

_SITEMAP_DIRECTIVE = re.compile(r"^\s*sitemap\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
_ABSOLUTE_URL = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
_CHILD_SITEMAP = re.compile(r"<sitemap>\s*<loc>\s*([^<\s]+)\s*</loc>", re.IGNORECASE)


@dataclass(frozen=True)
class ResolveTarget:
    """URL to resolve, optionally with the already loaded page."""

    url: str
    page: Optional[LoadedPage] = None

    @classmethod
    def coerce(cls, value: Union[str, "ResolveTarget"]) -> "ResolveTarget":
        if isinstance(value, ResolveTarget):
            return value
        return cls(url=str(value))


class Strategy:
    """Base class with helpers shared by all strategies."""

    name = "strategy"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        self.loader_factory = loader_factory
        self.minimum_chars = minimum_chars

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        raise NotImplementedError

    def success(self, document: ExtractedDocument, **extra: Any) -> StrategyAttempt:
        LOGGER.info(
            "Strategy %s extracted %d chars from %s",
            self.name,
            document.length_chars,
            document.origin_url,
        )
        return StrategyAttempt(
            strategy_name=self.name,
            succeeded=True,
            result_document=document,
            source_url=document.origin_url,
            **extra,
        )

    def failure(
        self, error: Union[str, PolicyScanError], **extra: Any
    ) -> StrategyAttempt:
        """Failed attempt; a PolicyScanError also contributes its hint."""
        LOGGER.info("Strategy %s failed: %s", self.name, error)
        hint = error.hint if isinstance(error, PolicyScanError) else None
        return StrategyAttempt(
            strategy_name=self.name,
            succeeded=False,
            error=str(error),
            hint=hint,
            **extra,
        )

    async def load_and_extract(
        self,
        loader: PageLoader,
        url: str,
        options: Optional[NavigationOptions] = None,
        *,
        retry: bool = True,
    ) -> ExtractedDocument:
        """
        Load *url* and extract an adequate document.

        Raises:
            NavigationFailure: The page did not load or answered with an
                error status.
            ContentTooShort: The page loaded but has too little text.
        """
        if retry:
            page = await loader.load_with_retry(url, options)
        else:
            page = await loader.load(url, options)
        if not page.ok:
            raise NavigationFailure(url, f"HTTP {page.status_code}")
        document = extract_document(page.html, page.final_url or url)
        if not document.is_adequate(self.minimum_chars):
            raise ContentTooShort(url, document.length_chars, self.minimum_chars)
        return document


def current_page_document(
    page: LoadedPage,
    weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
) -> Optional[ExtractedDocument]:
    """Extract *page* if it is itself a policy page with enough text."""
    classification = classify_document(page.html, page.final_url, weights=weights)
    if not classification.is_policy_page:
        return None
    document = extract_document(page.html, page.final_url)
    if document.is_adequate(MIN_CURRENT_PAGE_CHARS):
        return document
    LOGGER.debug(
        "%s classified as policy (confidence %d) but only %d chars",
        page.final_url,
        classification.confidence_score,
        document.length_chars,
    )
    return None


class StandardStrategy(Strategy):
    """Classify the page, else follow the best scored policy link."""

    name = "standard"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        fallback: Optional[DynamicContentFallback] = None,
        classifier_weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
        scoring_weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
        max_candidates: int = MAX_CANDIDATES,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        super().__init__(loader_factory, minimum_chars=minimum_chars)
        self.fallback = fallback
        self.classifier_weights = classifier_weights
        self.scoring_weights = scoring_weights
        self.max_candidates = max_candidates

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        target = ResolveTarget.coerce(target)
        async with self.loader_factory(NavigationOptions()) as loader:
            page = target.page
            if page is None:
                try:
                    page = await loader.load_with_retry(target.url)
                except NavigationFailure as exc:
                    return self.failure(exc, source_url=target.url)

            document = current_page_document(page, self.classifier_weights)
            if document is not None:
                return self.success(document)

            candidates = score_links(
                page.html, page.final_url, weights=self.scoring_weights
            )
            selection = select_candidates(
                candidates, floor=self.scoring_weights.relevance_floor
            )
            if not selection:
                return self.failure(
                    NoPolicyCandidate(page.final_url), source_url=page.final_url
                )

            sub_attempts: List[StrategyAttempt] = []
            last_error: Optional[PolicyScanError] = None
            dynamic_error: Optional[DynamicContentRequired] = None
            for candidate in selection.ordered()[: self.max_candidates]:
                try:
                    document = await self.load_and_extract(loader, candidate.url)
                except NavigationFailure as exc:
                    last_error = exc
                    continue
                except ContentTooShort as exc:
                    last_error = exc
                    if self.fallback is None or not self.fallback.is_known_dynamic(
                        candidate.url
                    ):
                        continue
                    outcome = await self.fallback.extract(candidate.url)
                    sub_attempts.extend(outcome.attempts)
                    if outcome.document is not None:
                        return self.success(
                            outcome.document, sub_attempts=tuple(sub_attempts)
                        )
                    dynamic_error = DynamicContentRequired(
                        candidate.url, exc.length, exc.minimum
                    )
                    continue
                return self.success(document, sub_attempts=tuple(sub_attempts))

        return self.failure(
            dynamic_error or last_error or "No candidate produced adequate content",
            source_url=target.url,
            sub_attempts=tuple(sub_attempts),
        )


def select_override_links(html: str, selectors: Sequence[str], base_url: str) -> List[str]:
    """Absolute hrefs of anchors matched by *selectors*, in selector order."""
    soup = BeautifulSoup(html or "", "html.parser")
    urls: List[str] = []
    for selector in selectors:
        try:
            matches = soup.select(selector)
        except SelectorSyntaxError:
            LOGGER.warning("Invalid override selector %r", selector)
            continue
        for element in matches:
            anchor = element if element.name == "a" else element.find("a", href=True)
            if anchor is None:
                continue
            url = resolve_href(anchor.get("href", ""), base_url)
            if url and url not in urls:
                urls.append(url)
    return urls


class EnhancedStrategy(Strategy):
    """Navigate with per-site tweaks and try the site's own link selectors."""

    name = "enhanced"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        overrides: Mapping[str, SiteOverride] = SITE_OVERRIDES,
        default_override: SiteOverride = DEFAULT_OVERRIDE,
        scoring_weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
        classifier_weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
        max_candidates: int = MAX_CANDIDATES,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        super().__init__(loader_factory, minimum_chars=minimum_chars)
        self.overrides = overrides
        self.default_override = default_override
        self.scoring_weights = scoring_weights
        self.classifier_weights = classifier_weights
        self.max_candidates = max_candidates

    def override(self, url: str) -> SiteOverride:
        return override_for(url, self.overrides, self.default_override)

    def navigation_options(self, url: str) -> NavigationOptions:
        override = self.override(url)
        LOGGER.debug("Navigation override for %s: %s", url, override)
        return NavigationOptions.from_override(override)

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        target = ResolveTarget.coerce(target)
        override = self.override(target.url)
        options = NavigationOptions.from_override(override)

        async with self.loader_factory(options) as loader:
            try:
                page = await loader.load_with_retry(target.url, options)
            except NavigationFailure as exc:
                return self.failure(exc, source_url=target.url)

            document = current_page_document(page, self.classifier_weights)
            if document is not None:
                return self.success(document)

            urls = select_override_links(page.html, override.selectors, page.final_url)
            for candidate in score_links(
                page.html, page.final_url, weights=self.scoring_weights
            ):
                if candidate.url not in urls:
                    urls.append(candidate.url)
            if not urls:
                return self.failure(
                    NoPolicyCandidate(page.final_url), source_url=page.final_url
                )

            last_error: Optional[PolicyScanError] = None
            for url in urls[: self.max_candidates]:
                try:
                    document = await self.load_and_extract(loader, url, options)
                except (NavigationFailure, ContentTooShort) as exc:
                    last_error = exc
                    continue
                return self.success(document)

        return self.failure(
            last_error or "No candidate produced adequate content",
            source_url=target.url,
        )


def direct_guess_urls(url: str) -> List[str]:
    """Well-known policy URLs on the bare and ``www.`` host."""
    host = host_of(url)
    if not host:
        return []
    scheme = urlsplit(url).scheme if "://" in url else "https"
    scheme = scheme if scheme in ("http", "https") else "https"
    guesses = [f"{scheme}://{host}{path}" for path in DIRECT_GUESS_PATHS]
    guesses.extend(f"{scheme}://www.{host}{path}" for path in DIRECT_GUESS_WWW_PATHS)
    return guesses


class DirectGuessStrategy(Strategy):
    """Try conventional policy paths directly."""

    name = "direct-guess"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        timeout: float = DIRECT_GUESS_TIMEOUT,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        super().__init__(loader_factory, minimum_chars=minimum_chars)
        self.timeout = timeout

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        target = ResolveTarget.coerce(target)
        guesses = direct_guess_urls(target.url)
        options = NavigationOptions(wait_until="domcontentloaded", timeout=self.timeout)
        async with self.loader_factory(options) as loader:
            for guess in guesses:
                try:
                    document = await self.load_and_extract(
                        loader, guess, options, retry=False
                    )
                except (NavigationFailure, ContentTooShort) as exc:
                    LOGGER.debug("Direct guess %s rejected: %s", guess, exc)
                    continue
                return self.success(document)
        return self.failure(
            f"None of {len(guesses)} conventional policy URLs responded with content",
            source_url=target.url,
        )


class SearchStrategy(Strategy):
    """Ask SearXNG for the site's policy page."""

    name = "search"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        search: PolicySearch = find_policy_url,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        super().__init__(loader_factory, minimum_chars=minimum_chars)
        self.search = search

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        target = ResolveTarget.coerce(target)
        domain = host_of(target.url)
        try:
            found = await self.search(domain)
        except SearchError as exc:
            return self.failure(f"Search failed: {exc}", source_url=target.url)
        if not found:
            return self.failure(
                f"Search returned no policy page for {domain}", source_url=target.url
            )

        async with self.loader_factory(NavigationOptions()) as loader:
            try:
                document = await self.load_and_extract(loader, found)
            except (NavigationFailure, ContentTooShort) as exc:
                return self.failure(exc, source_url=found)
        return self.success(document)


def sitemap_locations(robots_txt: str, base_url: str) -> List[str]:
    """Sitemaps declared in robots.txt, then the conventional locations."""
    declared = [m.group(1).strip() for m in _SITEMAP_DIRECTIVE.finditer(robots_txt or "")]
    defaults = [urljoin(base_url, path) for path in SITEMAP_PATHS]
    ordered: List[str] = []
    for url in [*declared, *defaults]:
        if url not in ordered:
            ordered.append(url)
    return ordered


def child_sitemaps(body: str) -> List[str]:
    """Child sitemap URLs listed by a sitemap index, in document order."""
    children: List[str] = []
    for match in _CHILD_SITEMAP.finditer(body or ""):
        url = match.group(1)
        if url not in children:
            children.append(url)
    return children


def listed_urls(body: str) -> List[str]:
    """Absolute URLs in a sitemap body, minus child sitemap entries."""
    children = set(child_sitemaps(body))
    return [url for url in _ABSOLUTE_URL.findall(body or "") if url not in children]


def best_policy_url(urls: Iterable[str], host: str) -> Optional[str]:
    """Highest-weight policy-like URL on *host* (first wins on ties)."""
    best: Optional[str] = None
    best_weight = 0
    for url in urls:
        url = url.rstrip(".,;")
        if host and host_of(url) != host:
            continue
        path = urlsplit(url).path
        weights = [p.weight for p in LINK_PATTERN_SET.all_matches(path)]
        if weights and max(weights) > best_weight:
            best, best_weight = url, max(weights)
    return best


class SitemapStrategy(Strategy):
    """Find a policy URL listed in the site's sitemaps."""

    name = "sitemap"

    def __init__(
        self,
        loader_factory: LoaderFactory = PageLoader,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DIRECT_GUESS_TIMEOUT,
        minimum_chars: int = MIN_LINK_CONTENT_CHARS,
    ):
        super().__init__(loader_factory, minimum_chars=minimum_chars)
        self._http_client = http_client
        self.timeout = timeout

    async def _get_text(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await client.get(url)
        except httpx.RequestError as exc:
            LOGGER.debug("Fetching %s failed: %s", url, exc)
            return ""
        if response.status_code >= 400:
            return ""
        return response.text

    async def find_policy_url(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        """
        Policy URL from robots.txt sitemaps or the conventional locations.

        A sitemap index is followed one level deep, at most
        ``MAX_CHILD_SITEMAPS`` children per index.
        """
        host = host_of(url)
        root = f"{urlsplit(url).scheme or 'https'}://{urlsplit(url).netloc or host}/"
        robots = await self._get_text(client, urljoin(root, "/robots.txt"))
        visited: Set[str] = set()
        for location in sitemap_locations(robots, root):
            if location in visited:
                continue
            visited.add(location)
            body = await self._get_text(client, location)
            if not body:
                continue
            found = best_policy_url(listed_urls(body), host)
            if found:
                LOGGER.debug("Sitemap %s lists policy URL %s", location, found)
                return found
            for child in child_sitemaps(body)[:MAX_CHILD_SITEMAPS]:
                if child in visited:
                    continue
                visited.add(child)
                child_body = await self._get_text(client, child)
                found = best_policy_url(listed_urls(child_body), host)
                if found:
                    LOGGER.debug("Child sitemap %s lists policy URL %s", child, found)
                    return found
        return None

    async def attempt(self, target: Union[str, ResolveTarget]) -> StrategyAttempt:
        target = ResolveTarget.coerce(target)
        url = target.url if "://" in target.url else f"https://{target.url}"
        if self._http_client is not None:
            found = await self.find_policy_url(self._http_client, url)
        else:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as client:
                found = await self.find_policy_url(client, url)
        if not found:
            return self.failure("No policy URL found in sitemaps", source_url=target.url)

        async with self.loader_factory(NavigationOptions()) as loader:
            try:
                document = await self.load_and_extract(loader, found)
            except (NavigationFailure, ContentTooShort) as exc:
                return self.failure(exc, source_url=found)
        return self.success(document)


def default_strategies(
    loader_factory: LoaderFactory = PageLoader,
    *,
    fallback: Optional[DynamicContentFallback] = None,
    search: PolicySearch = find_policy_url,
    classifier_weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
    scoring_weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> List[Strategy]:
    """The standard discovery chain, in priority order."""
    return [
        StandardStrategy(
            loader_factory,
            fallback=fallback,
            classifier_weights=classifier_weights,
            scoring_weights=scoring_weights,
        ),
        EnhancedStrategy(
            loader_factory,
            classifier_weights=classifier_weights,
            scoring_weights=scoring_weights,
        ),
        DirectGuessStrategy(loader_factory),
        SearchStrategy(loader_factory, search=search),
        SitemapStrategy(loader_factory),
    ]

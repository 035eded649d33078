"""End-to-end policy discovery and analysis for a single URL."""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .analysis import AnalysisClient, RateLimiter
from .browser import PageLoader
from .classifier import classify_document
from .config import NavigationOptions
from .document import (
    MIN_CURRENT_PAGE_CHARS,
    ExtractedDocument,
    LoadedPage,
    PageClassification,
    PolicyCandidate,
    PolicyReport,
)
from .errors import NavigationFailure, PolicyScanError
from .extractor import extract_document
from .fallback import DynamicContentFallback
from .gdpr import assess_gdpr
from .links import score_links
from .resolver import MultiStrategyResolver
from .search import find_policy_url
from .settings import PolicySettings
from .strategies import LoaderFactory, ResolveTarget, Strategy, default_strategies

LOGGER = logging.getLogger(__name__)

CURRENT_PAGE_STRATEGY = "current-page"


class ConfigurationError(PolicyScanError):
    """Raised when a required setting is missing."""


@dataclass(slots=True)
class PolicyLinks:
    """Classification of a page plus its ranked policy links."""

    url: str
    classification: PageClassification
    candidates: List[PolicyCandidate] = field(default_factory=list)


def normalize_url(url: str) -> str:
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    return url


def build_analysis_client(
    settings: PolicySettings, rate_limiter: Optional[RateLimiter] = None
) -> AnalysisClient:
    if not settings.analysis_url:
        raise ConfigurationError(
            "POLICYSCAN_ANALYSIS_URL is not set",
            hint="Set POLICYSCAN_ANALYSIS_URL in .env or pass --analysis-url.",
        )
    return AnalysisClient(
        settings.analysis_url,
        rate_limiter=rate_limiter or RateLimiter(settings.min_interval),
        origin=settings.origin,
    )


def build_fallback(
    settings: PolicySettings, loader_factory: LoaderFactory = PageLoader
) -> DynamicContentFallback:
    options = NavigationOptions(wait_until="domcontentloaded")
    return DynamicContentFallback(
        lambda: loader_factory(options),
        allow_any_host=settings.dynamic_any_host,
    )


def build_strategies(
    settings: PolicySettings, loader_factory: LoaderFactory = PageLoader
) -> List[Strategy]:
    search = functools.partial(
        find_policy_url,
        searxng_url=settings.searxng_url,
        searxng_username=settings.searxng_username,
        searxng_password=settings.searxng_password,
    )
    return default_strategies(
        loader_factory,
        fallback=build_fallback(settings, loader_factory),
        search=search,
        classifier_weights=settings.classifier_weights,
        scoring_weights=settings.scoring_weights,
    )


async def _load_active_page(
    url: str, loader_factory: LoaderFactory
) -> Optional[LoadedPage]:
    async with loader_factory(NavigationOptions()) as loader:
        try:
            return await loader.load_with_retry(url)
        except NavigationFailure as exc:
            LOGGER.warning("Could not load %s: %s", url, exc.reason)
            return None


async def find_policy_links_async(
    url: str,
    *,
    settings: Optional[PolicySettings] = None,
    loader_factory: LoaderFactory = PageLoader,
) -> PolicyLinks:
    """
    Classify a page and rank its outbound policy links.

    Raises:
        NavigationFailure: If the page cannot be loaded.
    """
    settings = settings or PolicySettings.from_env()
    url = normalize_url(url)
    async with loader_factory(NavigationOptions()) as loader:
        page = await loader.load_with_retry(url)
    return PolicyLinks(
        url=page.final_url,
        classification=classify_document(
            page.html, page.final_url, weights=settings.classifier_weights
        ),
        candidates=score_links(
            page.html, page.final_url, weights=settings.scoring_weights
        ),
    )


async def analyze_policy_async(
    url: str,
    *,
    settings: Optional[PolicySettings] = None,
    loader_factory: LoaderFactory = PageLoader,
    analysis_client: Optional[AnalysisClient] = None,
    strategies: Optional[Sequence[Strategy]] = None,
) -> PolicyReport:
    """
    Find the policy behind *url*, extract it and analyze it.

    The page itself is analyzed directly when it classifies as a policy
    with enough text; otherwise the strategy chain takes over.

    Args:
        url: Page to start from (scheme optional).
        settings: Settings; read from the environment when omitted.
        loader_factory: Builds an isolated page loader per use.
        analysis_client: Pre-built client, e.g. to share a rate limiter.
        strategies: Replacement strategy chain.

    Returns:
        PolicyReport with the analysis and its provenance.

    Raises:
        ConfigurationError: No analysis endpoint configured.
        AllStrategiesExhausted: No policy document could be found.
        UpstreamRateLimited: The analysis backend throttled the request.
        UpstreamUnavailable: The analysis backend is unreachable.
    """
    settings = settings or PolicySettings.from_env()
    client = analysis_client or build_analysis_client(settings)
    url = normalize_url(url)

    page = await _load_active_page(url, loader_factory)
    confidence: Optional[int] = None
    candidates: List[PolicyCandidate] = []

    if page is not None:
        classification = classify_document(
            page.html, page.final_url, weights=settings.classifier_weights
        )
        confidence = classification.confidence_score
        candidates = score_links(
            page.html, page.final_url, weights=settings.scoring_weights
        )
        if classification.is_policy_page:
            document = extract_document(page.html, page.final_url)
            if document.is_adequate(MIN_CURRENT_PAGE_CHARS):
                LOGGER.info(
                    "%s is a policy page (confidence %d); analyzing directly",
                    page.final_url,
                    confidence,
                )
                analysis = await client.analyze(document.text)
                return PolicyReport(
                    analysis=analysis,
                    origin_url=document.origin_url,
                    strategy_used=CURRENT_PAGE_STRATEGY,
                    confidence=confidence,
                    candidates=candidates,
                    gdpr=assess_gdpr(document.text),
                )

    async def validate(document: ExtractedDocument):
        return await client.analyze(document.text)

    resolver = MultiStrategyResolver(
        strategies if strategies is not None else build_strategies(settings, loader_factory),
        validate,
    )
    resolution = await resolver.resolve(ResolveTarget(url=url, page=page))
    return PolicyReport(
        analysis=resolution.analysis,
        origin_url=resolution.document.origin_url,
        strategy_used=resolution.strategy_used,
        confidence=confidence,
        attempts=list(resolution.attempts),
        candidates=candidates,
        gdpr=assess_gdpr(resolution.document.text),
    )


def analyze_policy(url: str, **kwargs) -> PolicyReport:
    """Synchronous wrapper for analyze_policy_async."""
    return asyncio.run(analyze_policy_async(url, **kwargs))


def find_policy_links(url: str, **kwargs) -> PolicyLinks:
    """Synchronous wrapper for find_policy_links_async."""
    return asyncio.run(find_policy_links_async(url, **kwargs))

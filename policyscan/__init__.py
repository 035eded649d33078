"""Find, extract and summarize the privacy policy behind a web page.

This package locates a site's privacy policy or terms of service, pulls
out clean text and sends it to a rate-limited summarization service. It
supports:

- Classifying whether a page is itself a policy page
- Ranking outbound links by how likely they lead to a policy
- Fallback strategies for dynamic pages, odd sites and hidden policies
- A keyword check of GDPR rights coverage in the extracted text

Example usage:

    from policyscan import analyze_policy_async, find_policy_links_async

    report = await analyze_policy_async("https://example.com")
    print(report.analysis.risk_score)
    for point in report.analysis.summary_points:
        print("-", point)

    links = await find_policy_links_async("https://example.com")
    for candidate in links.candidates:
        print(candidate.score, candidate.url)
"""

from __future__ import annotations

from .analysis import AnalysisClient, RateLimiter, parse_summary_points
from .classifier import ClassifierWeights, classify_document, classify_page
from .document import (
    AnalysisResult,
    ExtractedDocument,
    PageClassification,
    PolicyCandidate,
    PolicyReport,
    StrategyAttempt,
)
from .errors import (
    AllStrategiesExhausted,
    AnalysisError,
    ContentTooShort,
    DynamicContentRequired,
    NavigationFailure,
    NoPolicyCandidate,
    PolicyScanError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from .extractor import extract_document, normalize_whitespace, visible_text_sample
from .fallback import DynamicContentFallback, FallbackOutcome
from .gdpr import ComplianceStatus, GdprAssessment, assess_gdpr
from .links import CandidateSelection, ScoringWeights, score_anchor, score_links, select_candidates
from .pipeline import (
    PolicyLinks,
    analyze_policy,
    analyze_policy_async,
    find_policy_links,
    find_policy_links_async,
)
from .resolver import MultiStrategyResolver, Resolution
from .settings import PolicySettings

__all__ = [
    # Data model
    "AnalysisResult",
    "ExtractedDocument",
    "PageClassification",
    "PolicyCandidate",
    "PolicyReport",
    "StrategyAttempt",
    # Errors
    "PolicyScanError",
    "NavigationFailure",
    "ContentTooShort",
    "NoPolicyCandidate",
    "DynamicContentRequired",
    "AnalysisError",
    "UpstreamRateLimited",
    "UpstreamUnavailable",
    "AllStrategiesExhausted",
    # Classification and scoring
    "ClassifierWeights",
    "classify_page",
    "classify_document",
    "ScoringWeights",
    "CandidateSelection",
    "score_anchor",
    "score_links",
    "select_candidates",
    # Extraction
    "extract_document",
    "normalize_whitespace",
    "visible_text_sample",
    "DynamicContentFallback",
    "FallbackOutcome",
    # GDPR coverage
    "ComplianceStatus",
    "GdprAssessment",
    "assess_gdpr",
    # Resolution
    "MultiStrategyResolver",
    "Resolution",
    # Analysis
    "AnalysisClient",
    "RateLimiter",
    "parse_summary_points",
    # Pipeline
    "PolicySettings",
    "PolicyLinks",
    "analyze_policy",
    "analyze_policy_async",
    "find_policy_links",
    "find_policy_links_async",
    # MCP Server
    "mcp",
]


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

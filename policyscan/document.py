"""Data structures passed between the discovery and analysis stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .gdpr import GdprAssessment

# Minimum lengths (exclusive) for extracted text to be worth analysing.
MIN_LINK_CONTENT_CHARS = 100
MIN_CURRENT_PAGE_CHARS = 200


@dataclass(frozen=True, slots=True)
class PolicyCandidate:
    """An outbound link suspected of pointing to a policy document."""

    url: str
    anchor_text: str
    title_text: str
    score: int


@dataclass(frozen=True, slots=True)
class PageClassification:
    """Verdict on whether a document is itself a policy page."""

    is_policy_page: bool
    confidence_score: int
    source_url: str


@dataclass(frozen=True, slots=True)
class ExtractedDocument:
    """Normalized, noise-free text pulled out of a document."""

    text: str
    length_chars: int
    origin_url: str

    @classmethod
    def from_text(cls, text: str, origin_url: str) -> "ExtractedDocument":
        return cls(text=text, length_chars=len(text), origin_url=origin_url)

    def is_adequate(self, minimum: int = MIN_LINK_CONTENT_CHARS) -> bool:
        """Return True if the text is long enough to attempt analysis."""
        return self.length_chars > minimum


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Structured summary returned by the summarization backend."""

    summary_points: Tuple[str, ...]
    risk_score: int


@dataclass(frozen=True, slots=True)
class StrategyAttempt:
    """One resolver attempt; never mutated after creation."""

    strategy_name: str
    succeeded: bool
    result_document: Optional[ExtractedDocument] = None
    error: Optional[str] = None
    analysis: Optional[AnalysisResult] = None
    source_url: Optional[str] = None
    sub_attempts: Tuple["StrategyAttempt", ...] = ()
    hint: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LoadedPage:
    """A page as returned by the headless browser."""

    request_url: str
    final_url: str
    html: str
    status_code: Optional[int] = None
    title: str = ""

    @property
    def ok(self) -> bool:
        if self.status_code is None:
            return bool(self.html)
        return 200 <= self.status_code < 300


@dataclass(slots=True)
class PolicyReport:
    """Final analysis plus provenance for result consumers."""

    analysis: AnalysisResult
    origin_url: str
    strategy_used: str
    confidence: Optional[int] = None
    attempts: List[StrategyAttempt] = field(default_factory=list)
    candidates: List[PolicyCandidate] = field(default_factory=list)
    gdpr: Optional[GdprAssessment] = None

"""Score outbound anchors by how likely they lead to a policy document."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urldefrag, urljoin

from bs4 import BeautifulSoup

from .document import PolicyCandidate
from .extractor import normalize_whitespace
from .patterns import LINK_PATTERN_SET, PatternSet

LOGGER = logging.getLogger(__name__)

REJECTED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")


@dataclass(frozen=True)
class ScoringWeights:
    """Per-signal multipliers and bonuses for anchor scoring."""

    url_match: int = 10
    text_match: int = 5
    title_match: int = 3
    privacy_policy_url_bonus: int = 15
    privacy_policy_text_bonus: int = 10
    terms_only_penalty: int = 5
    relevance_floor: int = 10


DEFAULT_SCORING_WEIGHTS = ScoringWeights()

# (href, text, title) as found in the document.
Anchor = Tuple[str, str, str]


@dataclass(frozen=True)
class CandidateSelection:
    """Best candidate plus the others worth trying."""

    primary: Optional[PolicyCandidate]
    secondary: Tuple[PolicyCandidate, ...] = ()

    def __bool__(self) -> bool:
        return self.primary is not None

    def ordered(self) -> List[PolicyCandidate]:
        if self.primary is None:
            return []
        return [self.primary, *self.secondary]


def resolve_href(href: str, base_url: str) -> Optional[str]:
    """Absolute, fragment-free target of *href*, or None if unusable."""
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None
    if href.lower().startswith(REJECTED_SCHEMES):
        return None
    absolute, _ = urldefrag(urljoin(base_url, href))
    if not absolute.lower().startswith(("http://", "https://")):
        return None
    return absolute


def score_anchor(
    href: str,
    text: str,
    title: str = "",
    *,
    base_url: str = "",
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    patterns: PatternSet = LINK_PATTERN_SET,
) -> Optional[PolicyCandidate]:
    """
    Score a single anchor.

    Returns None for anchors that cannot be a candidate: rejected schemes,
    empty visible text, or no pattern hit in URL, text or title.
    """
    url = resolve_href(href, base_url)
    if url is None:
        return None
    text = normalize_whitespace(text)
    if not text:
        return None
    title = normalize_whitespace(title)

    url_lower = url.lower()
    text_lower = text.lower()

    url_hit = patterns.matches(url_lower)
    text_hit = patterns.matches(text)
    title_hit = bool(title) and patterns.matches(title)
    if not (url_hit or text_hit or title_hit):
        return None

    score = 0
    if url_hit:
        score += weights.url_match
    if text_hit:
        score += weights.text_match
    if title_hit:
        score += weights.title_match
    if "privacy-policy" in url_lower or "privacy_policy" in url_lower:
        score += weights.privacy_policy_url_bonus
    if "privacy policy" in text_lower:
        score += weights.privacy_policy_text_bonus
    if "terms" in url_lower and "privacy" not in url_lower:
        score -= weights.terms_only_penalty

    return PolicyCandidate(url=url, anchor_text=text, title_text=title, score=score)


def iter_anchors(html: str) -> Iterable[Anchor]:
    soup = BeautifulSoup(html or "", "html.parser")
    for element in soup.find_all("a", href=True):
        yield (
            element.get("href", ""),
            element.get_text(" "),
            element.get("title", "") or "",
        )


def score_links(
    source: Union[str, Sequence[Anchor]],
    base_url: str,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> List[PolicyCandidate]:
    """
    Score every anchor in a document and rank the candidates.

    Args:
        source: HTML markup or pre-collected ``(href, text, title)`` tuples.
        base_url: URL used to resolve relative hrefs.
        weights: Scoring weights.

    Returns:
        Candidates sorted by descending score; ties keep document order and
        duplicate URLs keep their first, highest-scored occurrence.
    """
    anchors = iter_anchors(source) if isinstance(source, str) else source
    scored: List[PolicyCandidate] = []
    for href, text, title in anchors:
        candidate = score_anchor(
            href, text, title, base_url=base_url, weights=weights
        )
        if candidate is not None:
            scored.append(candidate)

    # sorted() is stable, so equal scores stay in document order.
    ranked = sorted(scored, key=lambda c: c.score, reverse=True)
    seen = set()
    unique: List[PolicyCandidate] = []
    for candidate in ranked:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        unique.append(candidate)

    LOGGER.debug("Scored %d policy candidate(s) on %s", len(unique), base_url)
    return unique


def select_candidates(
    candidates: Sequence[PolicyCandidate],
    floor: int = DEFAULT_SCORING_WEIGHTS.relevance_floor,
) -> CandidateSelection:
    """Split ranked candidates into the primary and those above *floor*."""
    if not candidates:
        return CandidateSelection(primary=None)
    primary = candidates[0]
    secondary = tuple(c for c in candidates[1:] if c.score > floor)
    return CandidateSelection(primary=primary, secondary=secondary)

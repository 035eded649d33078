"""Decide whether the document being viewed is itself a policy page."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .document import PageClassification
from .extractor import page_title, visible_text_sample
from .patterns import (
    CONTENT_PATTERN_SET,
    LINK_PATTERN_SET,
    STRONG_PATTERN_SET,
    PatternSet,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierWeights:
    """Signal weights; tuned against a fixed site sample, not invariants."""

    url_match: int = 40
    title_match: int = 30
    content_match: int = 20
    strong_phrase: int = 20
    threshold: int = 50


DEFAULT_CLASSIFIER_WEIGHTS = ClassifierWeights()


def classify_page(
    url: str,
    title: str,
    content_sample: str,
    *,
    weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
    url_patterns: PatternSet = LINK_PATTERN_SET,
    content_patterns: PatternSet = CONTENT_PATTERN_SET,
    strong_patterns: PatternSet = STRONG_PATTERN_SET,
) -> PageClassification:
    """
    Score independent signals and classify the page.

    URL and title are high-precision signals; body content is noisier and
    weighs less, but can push a borderline page over the threshold.

    Args:
        url: Current document URL.
        title: Document title.
        content_sample: Leading ~1000 characters of visible text.
        weights: Signal weights and the policy threshold.

    Returns:
        PageClassification with a confidence clamped to 0-100.
    """
    confidence = 0
    if url_patterns.matches(url.lower()):
        confidence += weights.url_match
    if url_patterns.matches(title):
        confidence += weights.title_match
    if content_patterns.matches(content_sample):
        confidence += weights.content_match
    if strong_patterns.matches(content_sample):
        confidence += weights.strong_phrase

    confidence = max(0, min(100, confidence))
    is_policy = confidence >= weights.threshold
    LOGGER.debug(
        "Classified %s: confidence=%d policy=%s", url, confidence, is_policy
    )
    return PageClassification(
        is_policy_page=is_policy,
        confidence_score=confidence,
        source_url=url,
    )


def classify_document(
    html: str,
    url: str,
    *,
    weights: ClassifierWeights = DEFAULT_CLASSIFIER_WEIGHTS,
) -> PageClassification:
    """Classify raw markup by deriving its title and content sample."""
    return classify_page(
        url,
        page_title(html),
        visible_text_sample(html),
        weights=weights,
    )

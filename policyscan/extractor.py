"""Turn an HTML document into normalized, noise-free policy text.

The extractor is a pure transform over markup: it never performs I/O and
never mutates the caller's input (a fresh parse tree is built per call).
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Comment
from bs4.element import Tag

from .document import ExtractedDocument

LOGGER = logging.getLogger(__name__)

# Elements that never hold policy prose (navigation, chrome, ads, banners).
NOISE_SELECTORS: List[str] = [
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "svg",
    "nav",
    "header",
    "footer",
    "aside",
    ".menu",
    ".navigation",
    ".sidebar",
    "[class*='sidebar']",
    ".ads",
    ".advertisement",
    "[class*='advert']",
    "[role='navigation']",
    ".social-share",
    ".comments",
    ".related-articles",
    "#onetrust-banner-sdk",
    ".cky-consent-container",
    ".cky-consent-bar",
]

# Main content regions, most specific first.
MAIN_SELECTORS: List[str] = [
    "main",
    "[role='main']",
    ".main-content",
    "#main-content",
    ".content",
    "#content",
    "article",
    ".privacy-content",
    ".legal-content",
]

# A region must carry at least this much text to beat the whole body.
MIN_REGION_CHARS = 200

SAMPLE_CHARS = 1000

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs (including blank lines) and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def strip_noise(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove denylisted elements and comments from *soup* in place."""
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for selector in NOISE_SELECTORS:
        for element in soup.select(selector):
            if getattr(element, "decomposed", False):
                continue
            element.decompose()
    return soup


def select_main_region(
    soup: BeautifulSoup, min_chars: int = MIN_REGION_CHARS
) -> Tag:
    """Return the first prioritized content region, else the body."""
    for selector in MAIN_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        if len(normalize_whitespace(element.get_text(" "))) >= min_chars:
            return element
    return soup.body or soup


def extract_text(html: str) -> str:
    soup = strip_noise(parse_html(html))
    region = select_main_region(soup)
    return normalize_whitespace(region.get_text(" "))


def extract_document(html: str, origin_url: str) -> ExtractedDocument:
    """
    Extract the substantive text of an HTML document.

    Args:
        html: Raw or rendered page markup.
        origin_url: URL the markup was loaded from.

    Returns:
        ExtractedDocument with whitespace-normalized text.
    """
    text = extract_text(html)
    LOGGER.debug("Extracted %d characters from %s", len(text), origin_url)
    return ExtractedDocument.from_text(text, origin_url)


def visible_text_sample(html: str, limit: int = SAMPLE_CHARS) -> str:
    """Leading visible text of the whole body, used for classification."""
    soup = strip_noise(parse_html(html))
    root = soup.body or soup
    return normalize_whitespace(root.get_text(" "))[:limit]


def page_title(html: str) -> str:
    soup = parse_html(html)
    if soup.title and soup.title.string:
        return normalize_whitespace(soup.title.string)
    heading: Optional[Tag] = soup.find("h1")
    if heading is not None:
        return normalize_whitespace(heading.get_text(" "))
    return ""

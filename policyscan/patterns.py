"""Weighted regular expressions describing policy-like URLs and text.

Patterns are ordered broad-then-narrow: a generic ``privacy`` pattern sits
next to compound ones (``privacy-policy``) so specific hits can carry more
weight without losing recall. Bump ``PATTERN_SET_VERSION`` whenever a list
changes so scores stay comparable across runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Tuple

PATTERN_SET_VERSION = "3"


class PatternKind(str, Enum):
    """Which signal a pattern contributes to."""

    link = "link"
    content = "content"
    strong = "strong"


@dataclass(frozen=True)
class WeightedPattern:
    """A named, compiled regex with a relative weight."""

    name: str
    regex: Pattern[str]
    weight: int
    kind: PatternKind

    def search(self, text: str) -> bool:
        return bool(self.regex.search(text))


def _compile(
    kind: PatternKind, entries: Iterable[Tuple[str, str, int]]
) -> Tuple[WeightedPattern, ...]:
    return tuple(
        WeightedPattern(name=name, regex=re.compile(expr, re.IGNORECASE), weight=weight, kind=kind)
        for name, expr, weight in entries
    )


_SEP = r"[-_\s]?"

LINK_PATTERNS = _compile(
    PatternKind.link,
    [
        ("privacy-policy", rf"privacy{_SEP}policy", 10),
        ("privacy-statement", rf"privacy{_SEP}statement", 9),
        ("privacy-notice", rf"privacy{_SEP}notice", 9),
        ("privacy-center", rf"privacy{_SEP}cent(er|re)", 8),
        ("data-protection", rf"data{_SEP}protection", 8),
        ("data-privacy", rf"data{_SEP}privacy", 8),
        ("privacy", r"privacy", 6),
        ("cookie-policy", rf"cookie{_SEP}policy", 5),
        ("terms-of-service", rf"terms{_SEP}(of{_SEP})?service", 5),
        ("terms-and-conditions", rf"terms{_SEP}(and{_SEP}|&{_SEP})?conditions", 5),
        ("terms-of-use", rf"terms{_SEP}(of{_SEP})?use", 5),
        ("user-agreement", rf"user{_SEP}agreement", 4),
        ("legal-notice", rf"legal{_SEP}notice", 4),
        ("privacy-path", r"/privacy(\.html?)?/?(\?|#|$)", 6),
        ("terms-path", r"/(terms|tos)(\.html?)?/?(\?|#|$)", 3),
        ("policies-path", r"/polic(y|ies)/", 3),
        ("legal", r"legal", 2),
        ("gdpr", r"gdpr", 4),
        ("ccpa", r"ccpa", 4),
    ],
)

STRONG_INDICATOR_PATTERNS = _compile(
    PatternKind.strong,
    [
        ("we-collect", r"we\s+(may\s+)?collect\b.{0,80}?\binformation", 10),
        ("personal-data-we", r"personal\s+(data|information)\s+(that\s+)?we\b", 8),
        ("third-party-sharing", r"third[-\s]part(y|ies)\b.{0,40}?\bshar", 8),
        ("share-with-third-parties", r"\bshare\b.{0,60}?\bthird[-\s]part(y|ies)", 8),
        ("data-protection", r"data\s+protection", 6),
        ("data-controller", r"data\s+controller", 6),
        ("your-rights", r"your\s+(privacy\s+)?rights", 5),
        ("this-policy-describes", r"this\s+(privacy\s+)?(policy|notice|statement)\s+(describes|explains)", 8),
        ("retain-information", r"\bretain\b.{0,40}?\b(data|information)", 5),
        ("opt-out", r"opt[-\s]out", 4),
    ],
)

CONTENT_PATTERNS = LINK_PATTERNS + _compile(
    PatternKind.content,
    [
        ("personal-information", r"personal\s+(information|data)", 6),
        ("cookies", r"\bcookies\b", 3),
        ("data-controller", r"data\s+controller", 6),
    ],
)


class PatternSet:
    """An ordered collection of patterns with first-hit matching."""

    def __init__(self, patterns: Iterable[WeightedPattern]):
        self.patterns: Tuple[WeightedPattern, ...] = tuple(patterns)

    def __iter__(self):
        return iter(self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    def matches(self, text: str) -> bool:
        """Return True if any pattern matches *text*."""
        if not text:
            return False
        return any(pattern.search(text) for pattern in self.patterns)

    def first_match(self, text: str) -> Optional[WeightedPattern]:
        """Return the first pattern (in declared order) matching *text*."""
        if not text:
            return None
        for pattern in self.patterns:
            if pattern.search(text):
                return pattern
        return None

    def all_matches(self, text: str) -> List[WeightedPattern]:
        if not text:
            return []
        return [pattern for pattern in self.patterns if pattern.search(text)]


LINK_PATTERN_SET = PatternSet(LINK_PATTERNS)
CONTENT_PATTERN_SET = PatternSet(CONTENT_PATTERNS)
STRONG_PATTERN_SET = PatternSet(STRONG_INDICATOR_PATTERNS)


def matches(text: str, patterns: PatternSet = LINK_PATTERN_SET) -> bool:
    """Module-level shortcut for ``patterns.matches(text)``."""
    return patterns.matches(text)

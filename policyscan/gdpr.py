"""Keyword-based GDPR coverage check over extracted policy text.

Each check looks for a handful of plain phrases in the lowercased text.
Two or more hits count as compliant, one as partial, none as
non-compliant. This is a coverage heuristic, not a legal assessment.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Sequence, Tuple

EXCELLENT_THRESHOLD = 0.8
GOOD_THRESHOLD = 0.6
FAIR_THRESHOLD = 0.4


class ComplianceStatus(str, Enum):
    compliant = "compliant"
    partial = "partial"
    non_compliant = "non-compliant"


GDPR_CHECKS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Right to Access", ("access", "request data", "view data", "data subject access")),
    ("Right to Rectification", ("correct", "rectify", "update", "modify data")),
    ("Right to Erasure", ("delete", "remove", "erase", "right to be forgotten")),
    ("Data Portability", ("export", "download", "portability", "transfer data")),
    ("Consent Management", ("consent", "withdraw", "opt-out", "unsubscribe")),
    (
        "Data Processing Lawfulness",
        ("lawful basis", "legitimate interest", "legal basis"),
    ),
    ("Privacy by Design", ("privacy by design", "data protection", "minimal data")),
    (
        "Data Protection Officer",
        ("dpo", "data protection officer", "privacy officer"),
    ),
)


@dataclass(frozen=True, slots=True)
class GdprAssessment:
    """Per-check statuses plus the aggregate rating."""

    rating: str
    score: int
    checks: Tuple[Tuple[str, ComplianceStatus], ...]

    def count(self, status: ComplianceStatus) -> int:
        return sum(1 for _, found in self.checks if found is status)

    @property
    def summary(self) -> str:
        return (
            f"{self.count(ComplianceStatus.compliant)} compliant, "
            f"{self.count(ComplianceStatus.partial)} partial, "
            f"{self.count(ComplianceStatus.non_compliant)} non-compliant"
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "rating": self.rating,
            "score": self.score,
            "summary": self.summary,
            "checks": {name: status.value for name, status in self.checks},
        }


def check_terms(text: str, terms: Sequence[str]) -> ComplianceStatus:
    """Grade *text* (already lowercased) by how many *terms* it contains."""
    found = sum(1 for term in terms if term in text)
    if found >= 2:
        return ComplianceStatus.compliant
    if found == 1:
        return ComplianceStatus.partial
    return ComplianceStatus.non_compliant


def rating_for(ratio: float) -> str:
    if ratio >= EXCELLENT_THRESHOLD:
        return "Excellent"
    if ratio >= GOOD_THRESHOLD:
        return "Good"
    if ratio >= FAIR_THRESHOLD:
        return "Fair"
    return "Poor"


def assess_gdpr(
    text: str,
    checks: Sequence[Tuple[str, Sequence[str]]] = GDPR_CHECKS,
) -> GdprAssessment:
    """
    Run every check against *text* and aggregate the result.

    A compliant check is worth two points and a partial one point; the
    ratio of points to the maximum picks the rating. ``score`` is that
    ratio as a percentage, rounded half up.
    """
    lowered = (text or "").lower()
    statuses = tuple((name, check_terms(lowered, terms)) for name, terms in checks)
    if not statuses:
        return GdprAssessment(rating=rating_for(0.0), score=0, checks=())
    points = sum(
        2 if status is ComplianceStatus.compliant else 1
        for _, status in statuses
        if status is not ComplianceStatus.non_compliant
    )
    ratio = points / (2 * len(statuses))
    return GdprAssessment(
        rating=rating_for(ratio),
        score=int(math.floor(ratio * 100 + 0.5)),
        checks=statuses,
    )

"""Output and formatting helpers for CLI commands and MCP tools."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .document import PolicyCandidate, PolicyReport, StrategyAttempt
from .errors import PolicyScanError


def attempt_to_dict(attempt: StrategyAttempt) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "strategy": attempt.strategy_name,
        "succeeded": attempt.succeeded,
        "error": attempt.error,
        "hint": attempt.hint,
        "source_url": attempt.source_url,
        "length_chars": (
            attempt.result_document.length_chars if attempt.result_document else None
        ),
    }
    if attempt.sub_attempts:
        data["sub_attempts"] = [attempt_to_dict(sub) for sub in attempt.sub_attempts]
    return data


def candidate_to_dict(candidate: PolicyCandidate) -> Dict[str, Any]:
    return {
        "url": candidate.url,
        "anchor_text": candidate.anchor_text,
        "title_text": candidate.title_text,
        "score": candidate.score,
    }


def report_to_dict(report: PolicyReport) -> Dict[str, Any]:
    """Convert a report to a JSON-serializable dict."""
    return {
        "origin_url": report.origin_url,
        "strategy_used": report.strategy_used,
        "confidence": report.confidence,
        "risk_score": report.analysis.risk_score,
        "summary": list(report.analysis.summary_points),
        "attempts": [attempt_to_dict(a) for a in report.attempts],
        "candidates": [candidate_to_dict(c) for c in report.candidates],
        "gdpr": report.gdpr.as_dict() if report.gdpr else None,
    }


def error_to_dict(exc: PolicyScanError) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "error": str(exc),
        "hint": exc.hint,
        "kind": getattr(exc, "kind", exc.__class__.__name__),
        "retryable": bool(getattr(exc, "retryable", False)),
    }
    attempts = getattr(exc, "attempts", None)
    if attempts:
        data["attempts"] = [attempt_to_dict(a) for a in attempts]
    return data


def format_report_markdown(report: PolicyReport) -> str:
    """Render a report as markdown.

    Example output:
    # Policy analysis: https://example.com/privacy

    **Risk score:** 4/10
    _Found via standard_

    - Collects email addresses...
    """
    lines = [
        f"# Policy analysis: {report.origin_url}",
        "",
        f"**Risk score:** {report.analysis.risk_score}/10",
        f"_Found via {report.strategy_used}_",
        "",
    ]
    lines.extend(f"- {point}" for point in report.analysis.summary_points)
    lines.append("")
    if report.gdpr is not None:
        lines.append(
            f"## GDPR coverage: {report.gdpr.rating} ({report.gdpr.score}%)"
        )
        lines.append("")
        lines.append(report.gdpr.summary)
        lines.append("")
        lines.extend(
            f"- {name}: {status.value}" for name, status in report.gdpr.checks
        )
        lines.append("")
    return "\n".join(lines)


def format_candidates_markdown(
    url: str,
    candidates: List[PolicyCandidate],
    *,
    is_policy_page: bool = False,
    confidence: Optional[int] = None,
) -> str:
    lines = [f"# Policy links: {url}"]
    if confidence is not None:
        verdict = "is" if is_policy_page else "is not"
        lines.append(f"_Page {verdict} a policy page (confidence {confidence})_")
    lines.append("")
    if not candidates:
        lines.append("No policy links found.")
    for i, candidate in enumerate(candidates, 1):
        lines.append(f"{i}. [{candidate.anchor_text}]({candidate.url}) score={candidate.score}")
    lines.append("")
    return "\n".join(lines)


def format_error_markdown(exc: PolicyScanError) -> str:
    lines = [f"**Error:** {exc}", "", f"_Hint: {exc.hint}_"]
    attempts = getattr(exc, "attempts", None)
    if attempts:
        lines.append("")
        lines.append("Attempts:")
        for attempt in attempts:
            status = "ok" if attempt.succeeded else "failed"
            detail = f" ({attempt.error})" if attempt.error else ""
            lines.append(f"- {attempt.strategy_name}: {status}{detail}")
    return "\n".join(lines)


def to_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_output(text: str, output: Optional[str]) -> None:
    """Print *text*, or write it to *output* when given."""
    if output is None:
        print(text)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    logging.info("Wrote %s", path)

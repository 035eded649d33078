"""MCP server exposing policy discovery and analysis.

Provides tools for:
- Analyzing the privacy policy or terms behind a web page
- Listing the links on a page most likely to lead to its policy

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m policyscan.mcp_server

    # HTTP (for remote access)
    python -m policyscan.mcp_server --transport http --port 8000

Environment Variables:
    POLICYSCAN_ANALYSIS_URL: Summarization endpoint (required for analysis)
    POLICYSCAN_ORIGIN: Origin header sent to the endpoint
    POLICYSCAN_MIN_INTERVAL: Minimum seconds between analysis calls
    SEARXNG_URL: SearXNG instance URL used by the search strategy
"""

from __future__ import annotations

import argparse
import logging
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from .analysis import RateLimiter
from .cli_output import (
    candidate_to_dict,
    error_to_dict,
    format_candidates_markdown,
    format_error_markdown,
    format_report_markdown,
    report_to_dict,
    to_json,
)
from .errors import PolicyScanError
from .pipeline import (
    analyze_policy_async,
    build_analysis_client,
    find_policy_links_async,
)
from .settings import PolicySettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

# Load .env before reading environment variables
load_dotenv()

mcp = FastMCP(
    name="Policy Scanner",
    instructions="""
    Finds and summarizes privacy policies and terms of service.

    - analyze_policy: Locate the policy behind a URL and return a summary
      with a privacy risk score from 1 (low) to 10 (high).
    - find_policy_links: Rank the links on a page by how likely they lead
      to a policy, without calling the summarization service.

    Output formats:
    - markdown: Human-readable summary (default)
    - json: Full details including the strategy attempt log
    """,
)

# Shared across tool calls so concurrent requests respect one interval.
_RATE_LIMITER: Optional[RateLimiter] = None


class OutputFormat(str, Enum):
    """Output format for tool results."""

    markdown = "markdown"
    json = "json"


def _output_format(value: str) -> OutputFormat:
    try:
        return OutputFormat(value.lower())
    except ValueError:
        return OutputFormat.markdown


def _rate_limiter(settings: PolicySettings) -> RateLimiter:
    global _RATE_LIMITER
    if _RATE_LIMITER is None:
        _RATE_LIMITER = RateLimiter(settings.min_interval)
    return _RATE_LIMITER


@mcp.tool
async def analyze_policy(url: str, output_format: str = "markdown") -> str:
    """
    Find the privacy policy or terms behind a page and summarize them.

    Args:
        url: Any page of the site; a policy page works best.
        output_format: "markdown" (default) or "json"

    Returns:
        Summary points and a 1-10 risk score, or an error with a hint.

    Examples:
        analyze_policy(url="https://example.com")
        analyze_policy(url="https://example.com/privacy", output_format="json")
    """
    fmt = _output_format(output_format)
    LOGGER.info("Analyzing policy for %s", url)
    try:
        settings = PolicySettings.from_env()
        client = build_analysis_client(settings, _rate_limiter(settings))
        report = await analyze_policy_async(
            url, settings=settings, analysis_client=client
        )
    except PolicyScanError as exc:
        LOGGER.warning("Policy analysis failed for %s: %s", url, exc)
        if fmt == OutputFormat.json:
            return to_json(error_to_dict(exc))
        return format_error_markdown(exc)

    if fmt == OutputFormat.json:
        return to_json(report_to_dict(report))
    return format_report_markdown(report)


@mcp.tool
async def find_policy_links(
    url: str, limit: int = 10, output_format: str = "markdown"
) -> str:
    """
    Rank the links on a page by how likely they lead to a policy.

    Args:
        url: Page to inspect.
        limit: Maximum candidates to return (default: 10).
        output_format: "markdown" (default) or "json"
    """
    fmt = _output_format(output_format)
    try:
        links = await find_policy_links_async(url)
    except PolicyScanError as exc:
        if fmt == OutputFormat.json:
            return to_json(error_to_dict(exc))
        return format_error_markdown(exc)

    candidates = links.candidates[: max(1, limit)]
    if fmt == OutputFormat.json:
        return to_json(
            {
                "url": links.url,
                "is_policy_page": links.classification.is_policy_page,
                "confidence": links.classification.confidence_score,
                "candidates": [candidate_to_dict(c) for c in candidates],
            }
        )
    return format_candidates_markdown(
        links.url,
        candidates,
        is_policy_page=links.classification.is_policy_page,
        confidence=links.classification.confidence_score,
    )


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the policy scanner MCP server.",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    settings = PolicySettings.from_env()
    LOGGER.info("Analysis endpoint: %s", settings.analysis_url or "(not set)")
    LOGGER.info("SearXNG URL: %s", settings.searxng_url)

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()

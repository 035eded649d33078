"""Command-line interface for policy discovery and analysis."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from .cli_config import load_config
from .cli_output import (
    candidate_to_dict,
    error_to_dict,
    format_candidates_markdown,
    format_error_markdown,
    format_report_markdown,
    report_to_dict,
    to_json,
    write_output,
)
from .errors import PolicyScanError
from .pipeline import ConfigurationError, analyze_policy_async, find_policy_links_async
from .settings import PolicySettings

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _settings_from_args(args: argparse.Namespace) -> PolicySettings:
    """Environment settings with command-line overrides applied."""
    settings = PolicySettings.from_env()
    overrides = {}
    if getattr(args, "analysis_url", None):
        overrides["analysis_url"] = args.analysis_url
    if getattr(args, "origin", None):
        overrides["origin"] = args.origin
    if getattr(args, "min_interval", None) is not None:
        overrides["min_interval"] = args.min_interval
    if getattr(args, "dynamic_any_host", False):
        overrides["dynamic_any_host"] = True
    return dataclasses.replace(settings, **overrides) if overrides else settings


def _report_error(exc: PolicyScanError, json_output: bool, output: Optional[str]) -> None:
    if json_output:
        write_output(to_json(error_to_dict(exc)), output)
    else:
        logging.error("%s", exc)
        print(format_error_markdown(exc), file=sys.stderr)


# =============================================================================
# ANALYZE COMMAND
# =============================================================================


def _parse_analyze_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="policyscan",
        description="Find a site's privacy policy or terms and summarize them.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Analyze the policy behind a page
  policyscan https://example.com

  # JSON output including the strategy attempt log
  policyscan example.com --json -o report.json

  # Allow the dynamic-content fallback for every host
  policyscan https://app.example.com --dynamic-any-host
""",
    )
    parser.add_argument("url", help="Page to start from")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write the report to this file instead of stdout",
    )
    parser.add_argument(
        "--analysis-url",
        type=str,
        default=None,
        help="Summarization endpoint (overrides POLICYSCAN_ANALYSIS_URL)",
    )
    parser.add_argument(
        "--origin",
        type=str,
        default=None,
        help="Origin header sent to the endpoint (overrides POLICYSCAN_ORIGIN)",
    )
    parser.add_argument(
        "--min-interval",
        type=float,
        default=None,
        help="Minimum seconds between analysis calls (default: 4)",
    )
    parser.add_argument(
        "--dynamic-any-host",
        action="store_true",
        help="Use the dynamic-content fallback for any host, not only known ones",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


async def _run_analyze_async(args: argparse.Namespace) -> int:
    """Main async entry point for analyze."""
    settings = _settings_from_args(args)
    logging.info("Analyzing policy for: %s", args.url)
    try:
        report = await analyze_policy_async(args.url, settings=settings)
    except ConfigurationError as exc:
        _report_error(exc, args.json_output, None)
        return EXIT_CONFIG
    except PolicyScanError as exc:
        _report_error(exc, args.json_output, args.output)
        return EXIT_FAILURE

    logging.info(
        "Analyzed %s via %s (risk %d/10)",
        report.origin_url,
        report.strategy_used,
        report.analysis.risk_score,
    )
    if args.json_output:
        write_output(to_json(report_to_dict(report)), args.output)
    else:
        write_output(format_report_markdown(report), args.output)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the policyscan command."""
    args = _parse_analyze_args(argv)
    _setup_logging(args.verbose)
    load_config()

    try:
        return asyncio.run(_run_analyze_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_FAILURE


# =============================================================================
# FIND COMMAND
# =============================================================================


def _parse_find_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="policyscan-find",
        description="List the links on a page most likely to lead to its policy.",
    )
    parser.add_argument("url", help="Page to inspect")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum candidates to show (default: 10)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write results to this file instead of stdout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


async def _run_find_async(args: argparse.Namespace) -> int:
    """Main async entry point for find."""
    try:
        links = await find_policy_links_async(args.url, settings=PolicySettings.from_env())
    except PolicyScanError as exc:
        _report_error(exc, args.json_output, args.output)
        return EXIT_FAILURE

    candidates = links.candidates[: max(1, args.limit)]
    logging.info("Found %d policy link(s) on %s", len(links.candidates), links.url)
    if args.json_output:
        data = {
            "url": links.url,
            "is_policy_page": links.classification.is_policy_page,
            "confidence": links.classification.confidence_score,
            "candidates": [candidate_to_dict(c) for c in candidates],
        }
        write_output(to_json(data), args.output)
    else:
        write_output(
            format_candidates_markdown(
                links.url,
                candidates,
                is_policy_page=links.classification.is_policy_page,
                confidence=links.classification.confidence_score,
            ),
            args.output,
        )
    return EXIT_OK


def find_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the policyscan-find command."""
    args = _parse_find_args(argv)
    _setup_logging(args.verbose)
    load_config()

    try:
        return asyncio.run(_run_find_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())

"""Tests for policyscan.cli module."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from policyscan.cli import (
    EXIT_CONFIG,
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_INTERRUPTED,
    _parse_analyze_args,
    _parse_find_args,
    _settings_from_args,
    find_main,
    main,
)
from policyscan.cli_output import (
    attempt_to_dict,
    error_to_dict,
    format_candidates_markdown,
    format_error_markdown,
    format_report_markdown,
    report_to_dict,
    write_output,
)
from policyscan.document import (
    AnalysisResult,
    ExtractedDocument,
    PageClassification,
    PolicyCandidate,
    PolicyReport,
    StrategyAttempt,
)
from policyscan.errors import DYNAMIC_CONTENT_HINT, AllStrategiesExhausted, UpstreamRateLimited
from policyscan.gdpr import assess_gdpr
from policyscan.pipeline import ConfigurationError, PolicyLinks

PRIVACY = "https://acme.test/privacy"


def _report() -> PolicyReport:
    document = ExtractedDocument.from_text("policy", PRIVACY)
    return PolicyReport(
        analysis=AnalysisResult(summary_points=("Collects email", "Sells data"), risk_score=7),
        origin_url=PRIVACY,
        strategy_used="standard",
        confidence=20,
        attempts=[
            StrategyAttempt(
                strategy_name="standard",
                succeeded=True,
                result_document=document,
                source_url=PRIVACY,
                sub_attempts=(
                    StrategyAttempt(strategy_name="dynamic-content", succeeded=True),
                ),
            )
        ],
        candidates=[PolicyCandidate(PRIVACY, "Privacy", "", 30)],
        gdpr=assess_gdpr("We ask for consent. You can withdraw it or contact our DPO."),
    )


def _exhausted() -> AllStrategiesExhausted:
    return AllStrategiesExhausted(
        "https://acme.test/",
        [StrategyAttempt(strategy_name="standard", succeeded=False, error="No link")],
    )


class TestOutput:
    def test_report_to_dict(self):
        data = report_to_dict(_report())
        assert data["risk_score"] == 7
        assert data["summary"] == ["Collects email", "Sells data"]
        assert data["attempts"][0]["length_chars"] == 6
        assert data["attempts"][0]["sub_attempts"][0]["strategy"] == "dynamic-content"
        assert data["candidates"][0]["score"] == 30
        assert data["gdpr"]["rating"] == "Poor"
        assert data["gdpr"]["score"] == 19
        assert data["gdpr"]["checks"]["Consent Management"] == "compliant"

    def test_report_without_gdpr(self):
        report = _report()
        report.gdpr = None
        assert report_to_dict(report)["gdpr"] is None
        assert "GDPR" not in format_report_markdown(report)

    def test_attempt_without_document(self):
        data = attempt_to_dict(StrategyAttempt(strategy_name="search", succeeded=False, error="x"))
        assert data["length_chars"] is None
        assert "sub_attempts" not in data
        assert data["hint"] is None

    def test_attempt_hint(self):
        attempt = StrategyAttempt(
            strategy_name="standard",
            succeeded=False,
            error="too short",
            hint=DYNAMIC_CONTENT_HINT,
        )
        assert attempt_to_dict(attempt)["hint"] == DYNAMIC_CONTENT_HINT

    def test_error_to_dict(self):
        data = error_to_dict(UpstreamRateLimited("busy", status_code=429))
        assert data["kind"] == "rate-limit"
        assert data["retryable"] is True

        data = error_to_dict(_exhausted())
        assert data["kind"] == "AllStrategiesExhausted"
        assert data["attempts"][0]["error"] == "No link"

    def test_report_markdown(self):
        text = format_report_markdown(_report())
        assert f"# Policy analysis: {PRIVACY}" in text
        assert "**Risk score:** 7/10" in text
        assert "- Sells data" in text
        assert "## GDPR coverage: Poor (19%)" in text
        assert "1 compliant, 1 partial, 6 non-compliant" in text
        assert "- Data Protection Officer: partial" in text

    def test_candidates_markdown(self):
        text = format_candidates_markdown(
            "https://acme.test/", [PolicyCandidate(PRIVACY, "Privacy", "", 30)], confidence=20
        )
        assert "is not a policy page" in text
        assert f"1. [Privacy]({PRIVACY}) score=30" in text
        assert "No policy links found." in format_candidates_markdown("u", [])

    def test_error_markdown(self):
        text = format_error_markdown(_exhausted())
        assert "_Hint:" in text
        assert "- standard: failed (No link)" in text

    def test_write_output_to_file(self, tmp_path):
        target = tmp_path / "nested" / "report.md"
        write_output("hello", str(target))
        assert target.read_text() == "hello"

    def test_write_output_stdout(self, capsys):
        write_output("hello", None)
        assert capsys.readouterr().out == "hello\n"


class TestParseArgs:
    def test_analyze_defaults(self):
        args = _parse_analyze_args(["https://acme.test"])
        assert args.url == "https://acme.test"
        assert args.output is None
        assert args.min_interval is None
        assert not args.json_output
        assert not args.dynamic_any_host

    def test_analyze_all_options(self):
        args = _parse_analyze_args(
            [
                "acme.test",
                "-o",
                "out.json",
                "--analysis-url",
                "https://backend.test",
                "--origin",
                "policyscan://cli",
                "--min-interval",
                "2.5",
                "--dynamic-any-host",
                "--json",
                "-v",
            ]
        )
        assert args.output == "out.json"
        assert args.min_interval == 2.5
        assert args.json_output and args.verbose and args.dynamic_any_host

    def test_find_args(self):
        args = _parse_find_args(["acme.test", "--limit", "3", "--json"])
        assert args.limit == 3
        assert args.json_output

    def test_settings_overrides(self, monkeypatch):
        monkeypatch.setenv("POLICYSCAN_ANALYSIS_URL", "https://env.test")
        monkeypatch.setenv("POLICYSCAN_MIN_INTERVAL", "6")
        args = _parse_analyze_args(["acme.test", "--origin", "policyscan://cli"])
        settings = _settings_from_args(args)
        assert settings.analysis_url == "https://env.test"
        assert settings.origin == "policyscan://cli"
        assert settings.min_interval == 6.0

        args = _parse_analyze_args(["acme.test", "--analysis-url", "https://flag.test", "--min-interval", "0"])
        settings = _settings_from_args(args)
        assert settings.analysis_url == "https://flag.test"
        assert settings.min_interval == 0.0


@patch("policyscan.cli.load_config")
class TestMain:
    def test_success_markdown(self, _load_config, capsys):
        with patch("policyscan.cli.analyze_policy_async", new=AsyncMock(return_value=_report())):
            assert main(["acme.test"]) == EXIT_OK
        assert "**Risk score:** 7/10" in capsys.readouterr().out

    def test_success_json_to_file(self, _load_config, tmp_path):
        out = tmp_path / "report.json"
        with patch("policyscan.cli.analyze_policy_async", new=AsyncMock(return_value=_report())):
            assert main(["acme.test", "--json", "-o", str(out)]) == EXIT_OK
        assert json.loads(out.read_text())["strategy_used"] == "standard"

    def test_configuration_error(self, _load_config, capsys):
        error = ConfigurationError("POLICYSCAN_ANALYSIS_URL is not set")
        with patch("policyscan.cli.analyze_policy_async", new=AsyncMock(side_effect=error)):
            assert main(["acme.test"]) == EXIT_CONFIG
        assert "POLICYSCAN_ANALYSIS_URL" in capsys.readouterr().err

    def test_exhausted_json(self, _load_config, capsys):
        with patch("policyscan.cli.analyze_policy_async", new=AsyncMock(side_effect=_exhausted())):
            assert main(["acme.test", "--json"]) == EXIT_FAILURE
        data = json.loads(capsys.readouterr().out)
        assert data["attempts"][0]["strategy"] == "standard"

    def test_unexpected_error(self, _load_config):
        with patch("policyscan.cli.analyze_policy_async", new=AsyncMock(side_effect=RuntimeError("boom"))):
            assert main(["acme.test"]) == EXIT_FAILURE

    def test_interrupted(self, _load_config):
        def interrupt(coro):
            coro.close()
            raise KeyboardInterrupt

        with patch("policyscan.cli.asyncio.run", side_effect=interrupt):
            assert main(["acme.test"]) == EXIT_INTERRUPTED

    def test_settings_forwarded(self, _load_config):
        mock = AsyncMock(return_value=_report())
        with patch("policyscan.cli.analyze_policy_async", new=mock):
            main(["acme.test", "--analysis-url", "https://flag.test", "--dynamic-any-host"])
        settings = mock.call_args.kwargs["settings"]
        assert settings.analysis_url == "https://flag.test"
        assert settings.dynamic_any_host is True
        _load_config.assert_called_once()


@patch("policyscan.cli.load_config")
class TestFindMain:
    def _links(self, count=3):
        return PolicyLinks(
            url="https://acme.test/",
            classification=PageClassification(False, 20, "https://acme.test/"),
            candidates=[
                PolicyCandidate(f"https://acme.test/p{i}", f"Privacy {i}", "", 40 - i)
                for i in range(count)
            ],
        )

    def test_json_limit(self, _load_config, capsys):
        with patch("policyscan.cli.find_policy_links_async", new=AsyncMock(return_value=self._links())):
            assert find_main(["acme.test", "--json", "--limit", "2"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert [c["url"] for c in data["candidates"]] == [
            "https://acme.test/p0",
            "https://acme.test/p1",
        ]
        assert data["is_policy_page"] is False

    def test_markdown(self, _load_config, capsys):
        with patch("policyscan.cli.find_policy_links_async", new=AsyncMock(return_value=self._links(1))):
            assert find_main(["acme.test"]) == EXIT_OK
        assert "1. [Privacy 0](https://acme.test/p0) score=40" in capsys.readouterr().out

    def test_failure(self, _load_config, capsys):
        error = AllStrategiesExhausted("https://acme.test/", [])
        with patch("policyscan.cli.find_policy_links_async", new=AsyncMock(side_effect=error)):
            assert find_main(["acme.test"]) == EXIT_FAILURE

"""Tests for policyscan.resolver module."""

from __future__ import annotations

import pytest

from policyscan.document import AnalysisResult, ExtractedDocument, StrategyAttempt
from policyscan.errors import (
    DEFAULT_HINT,
    DYNAMIC_CONTENT_HINT,
    AllStrategiesExhausted,
    AnalysisError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from policyscan.fallback import STRATEGY_NAME as DYNAMIC_STRATEGY_NAME
from policyscan.resolver import MultiStrategyResolver, summarize_attempts
from policyscan.strategies import ResolveTarget

URL = "https://acme.test/"
SEVEN = AnalysisResult(summary_points=tuple(f"point {i}" for i in range(7)), risk_score=3)


class FakeStrategy:
    """Strategy double that returns a scripted attempt and counts calls."""

    def __init__(self, name, *, document=None, error="nothing here", raises=None, sub_attempts=(), hint=None):
        self.name = name
        self.hint = hint
        self.document = document
        self.error = error
        self.raises = raises
        self.sub_attempts = sub_attempts
        self.calls = []

    async def attempt(self, target):
        self.calls.append(target)
        if self.raises is not None:
            raise self.raises
        if self.document is not None:
            return StrategyAttempt(
                strategy_name=self.name,
                succeeded=True,
                result_document=self.document,
                source_url=self.document.origin_url,
            )
        return StrategyAttempt(
            strategy_name=self.name,
            succeeded=False,
            error=self.error,
            source_url=URL,
            sub_attempts=self.sub_attempts,
            hint=self.hint,
        )


def _doc(url="https://acme.test/privacy"):
    return ExtractedDocument.from_text("policy text " * 20, url)


def _validator(result=SEVEN, raises=None):
    calls = []

    async def validate(document):
        calls.append(document)
        if raises is not None:
            raise raises
        return result

    validate.calls = calls
    return validate


class TestResolve:
    @pytest.mark.asyncio
    async def test_stops_at_first_validated_strategy(self):
        strategies = [
            FakeStrategy("standard"),
            FakeStrategy("enhanced"),
            FakeStrategy("direct-guess", document=_doc()),
            FakeStrategy("search", document=_doc()),
            FakeStrategy("sitemap", document=_doc()),
        ]
        validator = _validator()

        resolution = await MultiStrategyResolver(strategies, validator).resolve(URL)

        assert resolution.strategy_used == "direct-guess"
        assert resolution.analysis == SEVEN
        assert resolution.document.origin_url == "https://acme.test/privacy"
        assert [len(s.calls) for s in strategies] == [1, 1, 1, 0, 0]
        assert [a.succeeded for a in resolution.attempts] == [False, False, True]
        assert len(validator.calls) == 1

    @pytest.mark.asyncio
    async def test_target_passed_through(self):
        strategy = FakeStrategy("standard", document=_doc())
        target = ResolveTarget(url=URL)
        await MultiStrategyResolver([strategy], _validator()).resolve(target)
        assert strategy.calls == [target]

    @pytest.mark.asyncio
    async def test_wrong_point_count_moves_on(self):
        six = AnalysisResult(summary_points=("a",) * 6, risk_score=5)
        results = [six, SEVEN]

        async def validate(document):
            return results.pop(0)

        strategies = [
            FakeStrategy("standard", document=_doc()),
            FakeStrategy("enhanced", document=_doc("https://acme.test/legal")),
        ]
        resolution = await MultiStrategyResolver(strategies, validate).resolve(URL)

        assert resolution.strategy_used == "enhanced"
        first = resolution.attempts[0]
        assert not first.succeeded
        assert "Expected 7 summary points, got 6" in first.error
        assert first.analysis.summary_points == ("a",) * 6

    @pytest.mark.asyncio
    async def test_generic_analysis_error_is_a_failed_attempt(self):
        strategies = [FakeStrategy("standard", document=_doc()), FakeStrategy("enhanced")]
        validator = _validator(raises=AnalysisError("Invalid input", status_code=400))

        with pytest.raises(AllStrategiesExhausted) as info:
            await MultiStrategyResolver(strategies, validator).resolve(URL)

        assert "Analysis failed" in info.value.attempts[0].error
        assert len(strategies[1].calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [UpstreamRateLimited("slow down", status_code=429), UpstreamUnavailable("down", status_code=503)],
    )
    async def test_upstream_errors_abort(self, error):
        strategies = [FakeStrategy("standard", document=_doc()), FakeStrategy("enhanced", document=_doc())]

        with pytest.raises(type(error)):
            await MultiStrategyResolver(strategies, _validator(raises=error)).resolve(URL)

        assert strategies[1].calls == []

    @pytest.mark.asyncio
    async def test_strategy_exception_recorded(self):
        strategies = [
            FakeStrategy("standard", raises=RuntimeError("browser crashed")),
            FakeStrategy("enhanced", document=_doc()),
        ]
        resolution = await MultiStrategyResolver(strategies, _validator()).resolve(URL)
        assert resolution.attempts[0].error == "browser crashed"
        assert resolution.strategy_used == "enhanced"

    @pytest.mark.asyncio
    async def test_exhausted(self):
        strategies = [FakeStrategy(name) for name in ("a", "b", "c")]

        with pytest.raises(AllStrategiesExhausted) as info:
            await MultiStrategyResolver(strategies, _validator()).resolve(URL)

        assert len(info.value.attempts) == 3
        assert info.value.hint == DEFAULT_HINT
        assert "3 attempt(s)" in str(info.value)

    @pytest.mark.asyncio
    async def test_exhausted_after_dynamic_fallback(self):
        dynamic = StrategyAttempt(strategy_name=DYNAMIC_STRATEGY_NAME, succeeded=False, error="short")
        strategies = [FakeStrategy("standard", sub_attempts=(dynamic,)), FakeStrategy("enhanced")]

        with pytest.raises(AllStrategiesExhausted) as info:
            await MultiStrategyResolver(strategies, _validator()).resolve(URL)

        assert info.value.hint == DYNAMIC_CONTENT_HINT

    @pytest.mark.asyncio
    async def test_exhausted_after_dynamic_hint(self):
        strategies = [
            FakeStrategy("standard", hint=DYNAMIC_CONTENT_HINT),
            FakeStrategy("enhanced", hint=DEFAULT_HINT),
        ]

        with pytest.raises(AllStrategiesExhausted) as info:
            await MultiStrategyResolver(strategies, _validator()).resolve(URL)

        assert info.value.hint == DYNAMIC_CONTENT_HINT
        assert info.value.attempts[0].hint == DYNAMIC_CONTENT_HINT

    @pytest.mark.asyncio
    async def test_custom_expected_points(self):
        three = AnalysisResult(summary_points=("a", "b", "c"), risk_score=5)
        resolver = MultiStrategyResolver(
            [FakeStrategy("standard", document=_doc())], _validator(three), expected_points=3
        )
        assert (await resolver.resolve(URL)).analysis == three


def test_summarize_attempts():
    attempts = [
        StrategyAttempt(strategy_name="standard", succeeded=False, error="No link"),
        StrategyAttempt(strategy_name="enhanced", succeeded=True),
    ]
    assert summarize_attempts(attempts) == ["standard: failed (No link)", "enhanced: ok"]

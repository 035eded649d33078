"""Tests for policyscan.analysis module."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from policyscan.analysis import (
    DEFAULT_SUMMARY_LINE,
    MAX_POLICY_CHARS,
    AnalysisClient,
    RateLimiter,
    backoff_delay,
    build_result,
    clamp_score,
    parse_summary_points,
    salvage_payload,
)
from policyscan.errors import AnalysisError, UpstreamRateLimited, UpstreamUnavailable

ENDPOINT = "https://backend.test/analyze"

SEVEN_POINTS = "\n".join(f"• Point {i}" for i in range(1, 8))


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _client(handler, **kwargs) -> AnalysisClient:
    clock = FakeClock()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("rate_limiter", RateLimiter(4.0, clock=clock, sleep=clock.sleep))
    kwargs.setdefault("sleep", clock.sleep)
    client = AnalysisClient(ENDPOINT, http_client=http_client, **kwargs)
    client.fake_clock = clock
    return client


def _ok(summary=SEVEN_POINTS, score=4):
    return httpx.Response(200, json={"success": True, "data": {"summary": summary, "score": score}})


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_call_not_delayed(self):
        clock = FakeClock()
        limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)
        assert await limiter.acquire() == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_second_call_delayed_to_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        first = clock.now
        clock.now += 1.0
        await limiter.acquire()
        assert clock.now - first >= 4.0
        assert clock.sleeps == [pytest.approx(3.0)]

    @pytest.mark.asyncio
    async def test_no_delay_after_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        clock.now += 10.0
        assert await limiter.acquire() == 0.0
        assert limiter.last_call == 10.0

    @pytest.mark.asyncio
    async def test_concurrent_callers_are_serialized(self):
        clock = FakeClock()
        limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)
        await asyncio.gather(*(limiter.acquire() for _ in range(3)))
        assert clock.now == pytest.approx(8.0)


class TestParsing:
    def test_parse_summary_points(self):
        markdown = "Intro line\n• First\n- Second\n* Third\n1. Fourth\n\n  12. Fifth  "
        assert parse_summary_points(markdown) == ["First", "Second", "Third", "Fourth", "Fifth"]

    def test_parse_summary_points_empty(self):
        assert parse_summary_points("") == []
        assert parse_summary_points("no bullets here") == []

    @pytest.mark.parametrize(
        "value,expected",
        [(4, 4), (0, 1), (-3, 1), (15, 10), (7.6, 8), ("6", 6), (None, 5), ("high", 5), (True, 5)],
    )
    def test_clamp_score(self, value, expected):
        assert clamp_score(value) == expected

    def test_salvage_code_fenced_json(self):
        text = '```json\n{"summary": "• a\\n• b", "score": 3}\n```'
        assert salvage_payload(text) == {"summary": "• a\n• b", "score": 3}

    def test_salvage_prose(self):
        text = "Here you go:\n• Tracks location\n- Sells data\nOverall risk score: 8 out of 10"
        payload = salvage_payload(text)
        assert payload["score"] == 8
        assert parse_summary_points(payload["summary"]) == ["Tracks location", "Sells data"]

    def test_salvage_caps_bullets(self):
        text = "\n".join(f"- item {i}" for i in range(12))
        payload = salvage_payload(text)
        assert len(parse_summary_points(payload["summary"])) == 7
        assert payload["score"] is None

    def test_build_result_defaults(self):
        result = build_result({})
        assert result.summary_points == (DEFAULT_SUMMARY_LINE,)
        assert result.risk_score == 5

    def test_build_result_unformatted_summary(self):
        result = build_result({"summary": "Plain prose summary.", "score": 2})
        assert result.summary_points[0].startswith("Analysis completed")
        assert "Plain prose summary." in result.summary_points[1]
        assert result.risk_score == 2

    def test_build_result_list_summary(self):
        result = build_result({"summary": ["a", " ", "b"], "score": 11})
        assert result.summary_points == ("a", "b")
        assert result.risk_score == 10

    def test_backoff(self):
        assert [backoff_delay(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


class TestAnalysisClient:
    def test_endpoint_required(self):
        with pytest.raises(ValueError):
            AnalysisClient("")

    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["origin"] = request.headers.get("origin")
            return _ok()

        client = _client(handler, origin="policyscan://cli")
        result = await client.analyze("policy text")
        assert len(result.summary_points) == 7
        assert result.summary_points[0] == "Point 1"
        assert result.risk_score == 4
        assert seen == {"body": {"policyText": "policy text"}, "origin": "policyscan://cli"}

    @pytest.mark.asyncio
    async def test_text_truncated(self):
        seen = {}

        def handler(request):
            seen["len"] = len(json.loads(request.content)["policyText"])
            return _ok()

        await _client(handler).analyze("a" * (MAX_POLICY_CHARS + 500))
        assert seen["len"] == MAX_POLICY_CHARS

    @pytest.mark.asyncio
    async def test_rate_limited_between_calls(self):
        client = _client(lambda request: _ok())
        await client.analyze("one")
        await client.analyze("two")
        assert client.fake_clock.sleeps == [pytest.approx(4.0)]

    @pytest.mark.asyncio
    async def test_429_maps_to_rate_limit(self):
        client = _client(lambda r: httpx.Response(429, json={"error": "Rate limit exceeded"}))
        with pytest.raises(UpstreamRateLimited) as info:
            await client.analyze("x")
        assert info.value.status_code == 429
        assert client.fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_quota_message_maps_to_rate_limit(self):
        client = _client(lambda r: httpx.Response(400, json={"message": "quota exhausted"}))
        with pytest.raises(UpstreamRateLimited):
            await client.analyze("x")

    @pytest.mark.asyncio
    async def test_400_is_generic_and_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "Invalid input"})

        with pytest.raises(AnalysisError) as info:
            await _client(handler).analyze("x")
        assert info.value.kind == "generic"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_413_is_generic(self):
        with pytest.raises(AnalysisError) as info:
            await _client(lambda r: httpx.Response(413, text="too large")).analyze("x")
        assert type(info.value) is AnalysisError
        assert info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_503_retried_then_unavailable(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={"error": "AI service unavailable"})

        client = _client(handler)
        with pytest.raises(UpstreamUnavailable):
            await client.analyze("x")
        assert len(calls) == 3
        assert client.fake_clock.sleeps == [1.0, 3.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_retries_respect_rate_limit(self):
        clock = FakeClock()
        posted_at = []

        def handler(request):
            posted_at.append(clock.now)
            return httpx.Response(503, json={"error": "AI service unavailable"})

        client = _client(
            handler,
            rate_limiter=RateLimiter(4.0, clock=clock, sleep=clock.sleep),
            sleep=clock.sleep,
        )
        with pytest.raises(UpstreamUnavailable):
            await client.analyze("x")
        assert posted_at == [0.0, 4.0, 8.0]
        gaps = [later - earlier for earlier, later in zip(posted_at, posted_at[1:])]
        assert all(gap >= 4.0 for gap in gaps)

    @pytest.mark.asyncio
    async def test_500_recovers_on_retry(self):
        responses = [httpx.Response(500, json={"error": "Internal"}), _ok()]
        client = _client(lambda r: responses.pop(0))
        result = await client.analyze("x")
        assert result.risk_score == 4

    @pytest.mark.asyncio
    async def test_network_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable, match="Unable to reach"):
            await _client(handler, max_retries=1).analyze("x")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_json_body_salvaged(self):
        body = "Summary:\n- Collects email\n- Shares with partners\nRisk rating: 7"
        client = _client(lambda r: httpx.Response(200, text=body))
        result = await client.analyze("x")
        assert result.summary_points == ("Collects email", "Shares with partners")
        assert result.risk_score == 7

    @pytest.mark.asyncio
    async def test_unsuccessful_payload(self):
        client = _client(lambda r: httpx.Response(200, json={"success": False, "error": "nope"}))
        with pytest.raises(AnalysisError, match="nope"):
            await client.analyze("x")

    @pytest.mark.asyncio
    async def test_score_clamped(self):
        client = _client(lambda r: _ok(score=42))
        assert (await client.analyze("x")).risk_score == 10

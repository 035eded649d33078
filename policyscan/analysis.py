"""Rate-limited client for the policy summarization backend."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .document import AnalysisResult
from .errors import AnalysisError, UpstreamRateLimited, UpstreamUnavailable

LOGGER = logging.getLogger(__name__)

MAX_POLICY_CHARS = 100_000
EXPECTED_SUMMARY_POINTS = 7
DEFAULT_RISK_SCORE = 5
MIN_RISK_SCORE = 1
MAX_RISK_SCORE = 10
DEFAULT_MIN_INTERVAL = 4.0
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 2
BACKOFF_BASE = 1.0
BACKOFF_CAP = 5.0

DEFAULT_SUMMARY_LINE = "Unable to generate summary due to analysis error"

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]

_BULLET_PREFIX = re.compile(r"^(?:[•\-*]|\d+\.)\s*")
_BULLET_LINE = re.compile(r"^\s*(?:[•\-*]|\d+\.)\s*\S", re.MULTILINE)
_SCORE_HINT = re.compile(r"(?:score|rating)\D{0,40}?(\d+)", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class RateLimiter:
    """
    Enforce a minimum interval between external calls.

    Callers are delayed, never rejected. The last-call timestamp is the only
    state shared across concurrent requests and is guarded by a lock.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    @property
    def last_call(self) -> Optional[float]:
        return self._last_call

    async def acquire(self) -> float:
        """Wait until a call is allowed; return the seconds waited."""
        async with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_call is not None:
                remaining = self._last_call + self.min_interval - now
                if remaining > 0:
                    LOGGER.debug("Rate limit: delaying call by %.2fs", remaining)
                    await self._sleep(remaining)
                    waited = remaining
                    now = self._clock()
            self._last_call = now
            return waited


def parse_summary_points(markdown: str) -> List[str]:
    """Convert markdown bullets (``•``, ``-``, ``*``, ``1.``) to a list."""
    points: List[str] = []
    for line in (markdown or "").splitlines():
        stripped = line.strip()
        if not stripped or not _BULLET_LINE.match(stripped):
            continue
        point = _BULLET_PREFIX.sub("", stripped).strip()
        if point:
            points.append(point)
    return points


def clamp_score(value: Any) -> int:
    """Coerce a backend score into [1, 10], defaulting to 5."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_RISK_SCORE
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RISK_SCORE
    if score != score:  # NaN
        return DEFAULT_RISK_SCORE
    return int(round(min(MAX_RISK_SCORE, max(MIN_RISK_SCORE, score))))


def salvage_payload(text: str) -> Dict[str, Any]:
    """
    Recover ``summary`` and ``score`` from a malformed response body.

    Strips code fences and retries JSON first, then falls back to
    collecting bullet lines and the first number following "score" or
    "rating".
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    try:
        loaded = json.loads(cleaned)
    except ValueError:
        loaded = None
    if isinstance(loaded, dict):
        return loaded.get("data") if isinstance(loaded.get("data"), dict) else loaded

    bullets = [m.group(0).strip() for m in re.finditer(r"^\s*[•\-*]\s*[^\n]+", cleaned, re.MULTILINE)]
    match = _SCORE_HINT.search(cleaned)
    return {
        "summary": "\n".join(bullets[:EXPECTED_SUMMARY_POINTS]),
        "score": int(match.group(1)) if match else None,
    }


def build_result(payload: Dict[str, Any]) -> AnalysisResult:
    """Normalize a ``{summary, score}`` payload into an AnalysisResult."""
    summary = payload.get("summary")
    if isinstance(summary, list):
        points = [str(p).strip() for p in summary if str(p).strip()]
    elif isinstance(summary, str) and summary.strip():
        points = parse_summary_points(summary)
        if not points:
            excerpt = summary.strip()
            if len(excerpt) > 200:
                excerpt = excerpt[:200] + "..."
            points = [
                "Analysis completed but formatting issue detected",
                f"Raw response: {excerpt}",
            ]
    else:
        points = []
    if not points:
        points = [DEFAULT_SUMMARY_LINE]
    return AnalysisResult(
        summary_points=tuple(points),
        risk_score=clamp_score(payload.get("score")),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or "")
    return ""


def classify_status(response: httpx.Response) -> AnalysisError:
    """Map a failed backend response to the matching error type."""
    status = response.status_code
    detail = _error_message(response)
    message = f"Analysis request failed with HTTP {status}"
    if detail:
        message = f"{message}: {detail}"
    if status == 429 or "quota" in detail.lower():
        return UpstreamRateLimited(message, status_code=status)
    if status in (502, 503, 504):
        return UpstreamUnavailable(message, status_code=status)
    return AnalysisError(message, status_code=status)


def backoff_delay(retry: int, base: float = BACKOFF_BASE, cap: float = BACKOFF_CAP) -> float:
    """Delay before the *retry*-th retry (1-based): 1s, 2s, 4s ... capped."""
    return min(base * (2 ** (retry - 1)), cap)


class AnalysisClient:
    """
    POST policy text to the summarization backend.

    Every POST, retries included, goes through the shared RateLimiter
    first. Server errors and network failures are retried with exponential
    backoff; 4xx responses are never retried.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        origin: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if not endpoint:
            raise ValueError("Analysis endpoint URL is required")
        self.endpoint = endpoint
        self.rate_limiter = rate_limiter or RateLimiter()
        self.origin = origin
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self._http_client = http_client
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.origin:
            headers["Origin"] = self.origin
        return headers

    async def analyze(self, text: str) -> AnalysisResult:
        """
        Summarize *text* and score its privacy risk.

        Raises:
            UpstreamRateLimited: The backend throttled the call.
            UpstreamUnavailable: The backend is down or unreachable.
            AnalysisError: Any other failure, including 400/413.
        """
        if len(text) > MAX_POLICY_CHARS:
            LOGGER.info(
                "Truncating policy text from %d to %d characters",
                len(text),
                MAX_POLICY_CHARS,
            )
            text = text[:MAX_POLICY_CHARS]

        payload = {"policyText": text}
        if self._http_client is not None:
            response = await self._post_with_retry(self._http_client, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._post_with_retry(client, payload)
        return self._parse(response)

    async def _post_with_retry(
        self, client: httpx.AsyncClient, payload: Dict[str, Any]
    ) -> httpx.Response:
        last_error: Optional[AnalysisError] = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = backoff_delay(attempt)
                LOGGER.debug("Retrying analysis request in %.1fs (retry %d)", delay, attempt)
                await self._sleep(delay)
            await self.rate_limiter.acquire()
            try:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except httpx.RequestError as exc:
                LOGGER.warning("Analysis request failed: %s", exc)
                last_error = UpstreamUnavailable(
                    f"Unable to reach analysis service: {exc}"
                )
                continue

            if response.status_code < 400:
                return response
            error = classify_status(response)
            if response.status_code < 500:
                raise error
            LOGGER.warning("Analysis backend returned HTTP %d", response.status_code)
            last_error = error

        assert last_error is not None
        raise last_error

    def _parse(self, response: httpx.Response) -> AnalysisResult:
        try:
            body = response.json()
        except ValueError:
            LOGGER.warning("Analysis response is not JSON; salvaging from text")
            return build_result(salvage_payload(response.text))

        if not isinstance(body, dict):
            raise AnalysisError("Invalid response format from analysis service")
        if "success" in body and not body.get("success"):
            raise AnalysisError(
                str(body.get("message") or body.get("error") or "Analysis failed")
            )
        data = body.get("data", body)
        if isinstance(data, str):
            data = salvage_payload(data)
        if not isinstance(data, dict):
            raise AnalysisError("Invalid analysis data from analysis service")
        return build_result(data)

"""Run discovery strategies in priority order until one validates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from .analysis import EXPECTED_SUMMARY_POINTS
from .document import AnalysisResult, ExtractedDocument, StrategyAttempt
from .errors import (
    DEFAULT_HINT,
    DYNAMIC_CONTENT_HINT,
    AllStrategiesExhausted,
    AnalysisError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from .fallback import STRATEGY_NAME as DYNAMIC_STRATEGY_NAME
from .strategies import ResolveTarget, Strategy

LOGGER = logging.getLogger(__name__)

Validator = Callable[[ExtractedDocument], Awaitable[AnalysisResult]]


@dataclass(frozen=True)
class Resolution:
    """A validated document and the attempt log that produced it."""

    document: ExtractedDocument
    analysis: AnalysisResult
    strategy_used: str
    attempts: Tuple[StrategyAttempt, ...]


def _tried_dynamic(attempts: Sequence[StrategyAttempt]) -> bool:
    return any(
        attempt.hint == DYNAMIC_CONTENT_HINT
        or any(sub.strategy_name == DYNAMIC_STRATEGY_NAME for sub in attempt.sub_attempts)
        for attempt in attempts
    )


class MultiStrategyResolver:
    """
    Fold over strategies with early exit.

    Strategies run strictly one after another. A strategy counts as
    successful only when the validator returns the expected number of
    summary points for its document. Throttling and outage errors from the
    validator abort the chain, since later strategies would hit them too.
    """

    def __init__(
        self,
        strategies: Sequence[Strategy],
        validator: Validator,
        *,
        expected_points: int = EXPECTED_SUMMARY_POINTS,
    ):
        self.strategies = list(strategies)
        self.validator = validator
        self.expected_points = expected_points

    async def _run(self, strategy: Strategy, target: ResolveTarget) -> StrategyAttempt:
        try:
            return await strategy.attempt(target)
        except Exception as exc:
            LOGGER.warning("Strategy %s raised: %s", strategy.name, exc)
            return StrategyAttempt(
                strategy_name=strategy.name,
                succeeded=False,
                error=str(exc) or exc.__class__.__name__,
                source_url=target.url,
            )

    async def _validate(self, attempt: StrategyAttempt) -> StrategyAttempt:
        document = attempt.result_document
        assert document is not None
        try:
            analysis = await self.validator(document)
        except (UpstreamRateLimited, UpstreamUnavailable):
            raise
        except AnalysisError as exc:
            return replace(attempt, succeeded=False, error=f"Analysis failed: {exc}")

        count = len(analysis.summary_points)
        if count != self.expected_points:
            return replace(
                attempt,
                succeeded=False,
                analysis=analysis,
                error=(
                    f"Expected {self.expected_points} summary points, got {count}"
                ),
            )
        return replace(attempt, analysis=analysis)

    async def resolve(self, target: Union[str, ResolveTarget]) -> Resolution:
        """
        Try each strategy in order and return the first validated result.

        Raises:
            AllStrategiesExhausted: No strategy produced a validated document.
            UpstreamRateLimited: The analysis backend throttled a request.
            UpstreamUnavailable: The analysis backend is unreachable.
        """
        target = ResolveTarget.coerce(target)
        attempts: List[StrategyAttempt] = []

        for strategy in self.strategies:
            LOGGER.info("Trying strategy %s for %s", strategy.name, target.url)
            attempt = await self._run(strategy, target)
            if attempt.succeeded and attempt.result_document is not None:
                attempt = await self._validate(attempt)
            elif attempt.succeeded:
                attempt = replace(attempt, succeeded=False, error="No document returned")
            attempts.append(attempt)

            if attempt.succeeded and attempt.analysis is not None:
                LOGGER.info("Strategy %s succeeded for %s", strategy.name, target.url)
                return Resolution(
                    document=attempt.result_document,
                    analysis=attempt.analysis,
                    strategy_used=strategy.name,
                    attempts=tuple(attempts),
                )

        hint = DYNAMIC_CONTENT_HINT if _tried_dynamic(attempts) else DEFAULT_HINT
        raise AllStrategiesExhausted(target.url, attempts, hint=hint)


def summarize_attempts(attempts: Sequence[StrategyAttempt]) -> List[str]:
    """One human-readable line per attempt."""
    lines = []
    for attempt in attempts:
        status = "ok" if attempt.succeeded else "failed"
        detail: Optional[str] = attempt.error
        line = f"{attempt.strategy_name}: {status}"
        if detail:
            line = f"{line} ({detail})"
        lines.append(line)
    return lines

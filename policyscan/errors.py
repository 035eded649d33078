"""Exception taxonomy for policy discovery and analysis."""

from __future__ import annotations

from typing import Optional, Sequence

from .document import StrategyAttempt

DEFAULT_HINT = "Navigate to the policy page directly and try again."
DYNAMIC_CONTENT_HINT = "Dynamic content detected, manual navigation required."


class PolicyScanError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, hint: str = DEFAULT_HINT):
        self.hint = hint
        super().__init__(message)


class NavigationFailure(PolicyScanError):
    """Raised when a page cannot be loaded (timeout, detached frame, network)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(
            f"Navigation to {url} failed: {reason}", hint=suggest_fix(reason)
        )


class ContentTooShort(PolicyScanError):
    """Raised when extracted text is below the adequacy threshold."""

    def __init__(self, url: str, length: int, minimum: int):
        self.url = url
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Content from {url} too short or empty ({length} <= {minimum} chars)"
        )


class NoPolicyCandidate(PolicyScanError):
    """Raised when a page has no link that looks like a policy."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No privacy policy link found on {url}")


class DynamicContentRequired(ContentTooShort):
    """Raised when a client-rendered page never produced enough text."""

    def __init__(self, url: str, length: int, minimum: int):
        super().__init__(url, length, minimum)
        self.hint = DYNAMIC_CONTENT_HINT


class AnalysisError(PolicyScanError):
    """Raised when the summarization backend call fails."""

    kind = "generic"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, hint="Please try again later.")


class UpstreamRateLimited(AnalysisError):
    """The backend (or its AI provider) rejected the call for rate reasons."""

    kind = "rate-limit"
    retryable = True


class UpstreamUnavailable(AnalysisError):
    """The backend or its AI provider is temporarily unavailable."""

    kind = "upstream-unavailable"
    retryable = True


class AllStrategiesExhausted(PolicyScanError):
    """Terminal failure: every discovery strategy failed."""

    def __init__(
        self,
        url: str,
        attempts: Sequence[StrategyAttempt],
        hint: str = DEFAULT_HINT,
    ):
        self.url = url
        self.attempts = list(attempts)
        super().__init__(
            f"All discovery strategies failed for {url} "
            f"({len(self.attempts)} attempt(s))",
            hint=hint,
        )


def suggest_fix(message: str) -> str:
    """Map a navigation failure message to an actionable hint."""
    lowered = message.lower()
    if "frame was detached" in lowered:
        return (
            "Site has aggressive JavaScript or anti-bot protection. "
            "Open the policy page in a regular browser."
        )
    if "timeout" in lowered:
        return "Site is slow to load. Retry with a longer timeout."
    if "target closed" in lowered or "browser has been closed" in lowered:
        return "Browser crashed while loading the page. Retry the request."
    if "net::err_" in lowered:
        return "Network error. Check the URL and your connection."
    return DEFAULT_HINT

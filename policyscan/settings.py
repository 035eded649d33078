"""Runtime settings read from the environment.

Values are read at call time (``PolicySettings.from_env()``) so tests can
monkeypatch the environment and late ``.env`` loading works.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .analysis import DEFAULT_MIN_INTERVAL
from .classifier import ClassifierWeights
from .links import ScoringWeights
from .search import DEFAULT_SEARXNG_URL

LOGGER = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


def _env_bool(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class PolicySettings:
    """Everything configurable about a policy scan."""

    analysis_url: Optional[str] = None
    origin: Optional[str] = None
    min_interval: float = DEFAULT_MIN_INTERVAL
    dynamic_any_host: bool = False
    searxng_url: str = DEFAULT_SEARXNG_URL
    searxng_username: Optional[str] = None
    searxng_password: Optional[str] = None
    classifier_weights: ClassifierWeights = field(default_factory=ClassifierWeights)
    scoring_weights: ScoringWeights = field(default_factory=ScoringWeights)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PolicySettings":
        env = os.environ if environ is None else environ
        return cls(
            analysis_url=env.get("POLICYSCAN_ANALYSIS_URL") or None,
            origin=env.get("POLICYSCAN_ORIGIN") or None,
            min_interval=_env_float(env, "POLICYSCAN_MIN_INTERVAL", DEFAULT_MIN_INTERVAL),
            dynamic_any_host=_env_bool(env, "POLICYSCAN_DYNAMIC_ANY_HOST"),
            searxng_url=env.get("SEARXNG_URL") or DEFAULT_SEARXNG_URL,
            searxng_username=env.get("SEARXNG_USERNAME") or None,
            searxng_password=env.get("SEARXNG_PASSWORD") or None,
        )

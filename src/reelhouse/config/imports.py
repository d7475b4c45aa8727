"""Import orchestration settings loaded from the environment."""

from __future__ import annotations

from reelhouse.domain.policy import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_FUZZY_THRESHOLD,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    DEFAULT_RESOLVE_CONCURRENCY,
    DEFAULT_STALL_AFTER_SECONDS,
    ImportSettings,
    JobRetryPolicy,
)

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError


def get_import_settings() -> ImportSettings:
    concurrency = env_int("REELHOUSE_RESOLVE_CONCURRENCY", DEFAULT_RESOLVE_CONCURRENCY)
    if concurrency < 1:
        raise ConfigurationError("REELHOUSE_RESOLVE_CONCURRENCY must be at least 1")
    max_attempts = env_int("REELHOUSE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)
    if max_attempts < 1:
        raise ConfigurationError("REELHOUSE_MAX_ATTEMPTS must be at least 1")
    threshold = env_float("REELHOUSE_FUZZY_THRESHOLD", DEFAULT_FUZZY_THRESHOLD)
    if not 0.0 < threshold <= 1.0:
        raise ConfigurationError("REELHOUSE_FUZZY_THRESHOLD must be within (0, 1]")

    return ImportSettings(
        resolve_concurrency=concurrency,
        retry=JobRetryPolicy(
            max_attempts=max_attempts,
            backoff_seconds=env_float("REELHOUSE_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS),
            max_backoff_seconds=env_float(
                "REELHOUSE_MAX_BACKOFF_SECONDS", DEFAULT_MAX_BACKOFF_SECONDS
            ),
        ),
        placeholder_on_missing=env_bool("REELHOUSE_PLACEHOLDER_ON_MISSING", default=True),
        placeholder_on_unavailable=env_bool(
            "REELHOUSE_PLACEHOLDER_ON_UNAVAILABLE", default=True
        ),
        fuzzy_matching=env_bool("REELHOUSE_FUZZY_MATCHING", default=False),
        fuzzy_threshold=threshold,
        stall_after_seconds=env_float("REELHOUSE_STALL_AFTER_SECONDS", DEFAULT_STALL_AFTER_SECONDS),
    )

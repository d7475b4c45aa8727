"""Import orchestration policy: concurrency, retry budgets and fallbacks."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_RESOLVE_CONCURRENCY = 8
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 2.0
DEFAULT_MAX_BACKOFF_SECONDS = 60.0
DEFAULT_FUZZY_THRESHOLD = 0.7
DEFAULT_STALL_AFTER_SECONDS = 3600.0


@dataclass(frozen=True, slots=True)
class JobRetryPolicy:
    """Retry budget of one queued work unit; the queue backend applies the backoff."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS

    @property
    def max_retries(self) -> int:
        return max(0, self.max_attempts - 1)


@dataclass(frozen=True, slots=True)
class ImportSettings:
    resolve_concurrency: int = DEFAULT_RESOLVE_CONCURRENCY
    retry: JobRetryPolicy = field(default_factory=JobRetryPolicy)
    # store a soft record from the batch's own hints when the catalog has no match
    placeholder_on_missing: bool = True
    # store a soft record when the catalog is down; enrichment retries it later
    placeholder_on_unavailable: bool = True
    fuzzy_matching: bool = False
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    stall_after_seconds: float = DEFAULT_STALL_AFTER_SECONDS

"""Configuration types for the HTTP clients of external sources."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

ShouldCacheHook = Callable[[object], bool]

USER_AGENT = "reelhouse/0.1 (+catalog import)"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries for one source.

    These cover single requests only; a work unit that still fails is retried by
    the job queue under its own budget.
    """

    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 60.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = field(default_factory=lambda: frozenset({"GET"}))
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0


@dataclass(slots=True, frozen=True)
class RateLimit:
    """Token bucket: ``max_calls`` tokens refilled over ``per_seconds``."""

    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Response cache of a source; ``sqlite`` keeps it under the data dir."""

    enabled: bool = True
    backend: Literal["sqlite", "memory"] = "memory"
    default_ttl_seconds: float | None = None
    refresh_ttl_on_access: bool = True
    should_cache: ShouldCacheHook | None = None


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    """HTTP behaviour for one external source.

    ``name`` doubles as the key of the process-wide rate limiter, so every client
    built for the same source draws from the same token bucket.
    """

    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = None
    default_headers: Mapping[str, str] = field(
        default_factory=lambda: {"User-Agent": USER_AGENT}
    )

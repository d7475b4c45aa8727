"""Ceremony/award payload source configuration."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_str
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy


@dataclass(frozen=True, slots=True)
class CeremonyConfig:
    """Where ceremony payloads come from.

    ``resilience.base_url`` is the root of a JSON document tree laid out as
    ``<organization>/<year>.json``; it may be ``None`` when payloads are only read
    from local files.
    """

    resilience: ResilienceConfig


def get_ceremony_config(*, resilience: ResilienceConfig | None = None) -> CeremonyConfig:
    return CeremonyConfig(
        resilience=resilience
        or ResilienceConfig(
            name="ceremonies",
            base_url=env_str("CEREMONY_SOURCE_URL"),
            ratelimit=RateLimit(max_calls=2, per_seconds=1.0),
            retry=RetryPolicy(total=3),
        ),
    )

"""Movie catalog (TMDb) configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_int, env_str, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

TMDB_BASE_URL = "https://api.themoviedb.org/3/"
TMDB_TIMEOUT_SECONDS = 15.0
# TMDb allows 40 requests per 10 seconds per key
TMDB_RATE_LIMIT = RateLimit(max_calls=40, per_seconds=10.0)
# discover/movie refuses pages beyond 500
TMDB_MAX_PAGES = 500
DEFAULT_PAGES_PER_YEAR = 50
TMDB_CACHE_TTL_SECONDS = 24 * 60 * 60


def cacheable_tmdb_payload(payload: object) -> bool:
    """Error bodies (``{"success": false, "status_code": ...}``) are never cached."""

    return not (isinstance(payload, dict) and payload.get("success") is False)


@dataclass(frozen=True, slots=True)
class CatalogConfig:
    """Holds catalog API configuration values."""

    api_key: str
    resilience: ResilienceConfig
    language: str = "en-US"
    max_pages: int = TMDB_MAX_PAGES
    pages_per_year: int = DEFAULT_PAGES_PER_YEAR


def get_catalog_config(*, resilience: ResilienceConfig | None = None) -> CatalogConfig:
    values = require_env_vars(("TMDB_API_KEY",))
    return CatalogConfig(
        api_key=values["TMDB_API_KEY"],
        language=env_str("TMDB_LANGUAGE", "en-US") or "en-US",
        max_pages=min(env_int("TMDB_MAX_PAGES", TMDB_MAX_PAGES), TMDB_MAX_PAGES),
        pages_per_year=env_int("TMDB_PAGES_PER_YEAR", DEFAULT_PAGES_PER_YEAR),
        resilience=resilience
        or ResilienceConfig(
            name="tmdb",
            base_url=env_str("TMDB_BASE_URL", TMDB_BASE_URL),
            timeout_seconds=TMDB_TIMEOUT_SECONDS,
            ratelimit=TMDB_RATE_LIMIT,
            retry=RetryPolicy(total=5),
            cache=CacheConfig(
                backend="sqlite",
                default_ttl_seconds=TMDB_CACHE_TTL_SECONDS,
                should_cache=cacheable_tmdb_payload,
            ),
        ),
    )

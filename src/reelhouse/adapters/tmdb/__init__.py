"""Public interface for the TMDb catalog adapter."""

from __future__ import annotations

from .client import TmdbAPIError, TmdbClient
from .schema import FindResponse, MovieListResponse, MoviePayload, PersonPayload
from .source import TmdbCatalogSource
from .translator import movie_item, person_item

__all__ = [
    "FindResponse",
    "MovieListResponse",
    "MoviePayload",
    "PersonPayload",
    "TmdbAPIError",
    "TmdbCatalogSource",
    "TmdbClient",
    "movie_item",
    "person_item",
]

"""HTTP client for the TMDb v3 API."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ValidationError

from reelhouse.adapters.http_resilience import default_client_factory
from reelhouse.config.catalog import CatalogConfig, get_catalog_config
from reelhouse.domain.errors import MalformedPayloadError, SourceUnavailableError

from .schema import ErrorResponse, FindResponse, MovieListResponse, MoviePayload, PersonPayload

if TYPE_CHECKING:
    from collections.abc import Mapping

    from reelhouse.adapters.http_resilience import ClientFactory

log = getLogger(__name__)

SOURCE_NAME = "tmdb"


class TmdbAPIError(MalformedPayloadError):
    """Raised when TMDb answers with a payload we cannot read."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class TmdbClient:
    config: CatalogConfig = field(default_factory=get_catalog_config)
    client_factory: ClientFactory = field(default=default_client_factory)

    async def discover_movies(
        self, page: int, *, params: Mapping[str, object] | None = None
    ) -> MovieListResponse:
        query = {"page": page, "sort_by": "popularity.desc", **(params or {})}
        payload = await self._get("discover/movie", query)
        return self._validate(MovieListResponse, payload, "discover/movie")

    async def search_movies(self, title: str, *, year: int | None = None) -> MovieListResponse:
        query: dict[str, object] = {"query": title, "include_adult": "false"}
        if year is not None:
            query["year"] = year
        payload = await self._get("search/movie", query)
        return self._validate(MovieListResponse, payload, "search/movie")

    async def movie_details(self, tmdb_id: int | str) -> tuple[MoviePayload, dict[str, Any]] | None:
        path = f"movie/{tmdb_id}"
        payload = await self._get(path, {"append_to_response": "external_ids"}, allow_missing=True)
        if payload is None:
            return None
        return self._validate(MoviePayload, payload, path), payload

    async def person_details(
        self, tmdb_id: int | str
    ) -> tuple[PersonPayload, dict[str, Any]] | None:
        path = f"person/{tmdb_id}"
        payload = await self._get(path, {"append_to_response": "external_ids"}, allow_missing=True)
        if payload is None:
            return None
        return self._validate(PersonPayload, payload, path), payload

    async def find_by_imdb(self, imdb_id: str) -> FindResponse:
        path = f"find/{imdb_id}"
        payload = await self._get(path, {"external_source": "imdb_id"})
        return self._validate(FindResponse, payload or {}, path)

    async def _get(
        self,
        path: str,
        params: Mapping[str, object],
        *,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        query = httpx.QueryParams(
            {
                "api_key": self.config.api_key,
                "language": self.config.language,
                **{key: str(value) for key, value in params.items()},
            }
        )
        async with self.client_factory(self.config.resilience) as client:
            try:
                response = await client.get(path, params=query)
            except httpx.HTTPError as exc:
                log.warning("TMDb request %s failed: %s", path, exc)
                raise SourceUnavailableError(
                    f"TMDb {path} unavailable: {exc}", source=SOURCE_NAME
                ) from exc

        if response.status_code == httpx.codes.NOT_FOUND and allow_missing:
            log.debug("TMDb %s not found", path)
            return None
        if response.is_error:
            message = _error_message(response)
            log.warning("TMDb %s answered %d: %s", path, response.status_code, message)
            raise SourceUnavailableError(
                f"TMDb {path} answered {response.status_code}: {message}", source=SOURCE_NAME
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TmdbAPIError(f"TMDb {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise TmdbAPIError(f"Unexpected TMDb {path} payload: {type(payload).__name__}")
        return payload

    @staticmethod
    def _validate[T: BaseModel](model: type[T], payload: object, path: str) -> T:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            log.error("TMDb %s payload failed validation: %s", path, exc)
            raise TmdbAPIError(f"Malformed TMDb {path} payload") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        return ErrorResponse.model_validate(response.json()).status_message
    except (ValueError, ValidationError):
        return response.reason_phrase or "error"

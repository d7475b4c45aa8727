"""Pydantic models describing the TMDb API payloads we read."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class TmdbBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ExternalIdsPayload(TmdbBaseModel):
    imdb_id: str | None = None

    _normalize_imdb = field_validator("imdb_id", mode="before")(_blank_to_none)


class MoviePayload(TmdbBaseModel):
    """A movie as listed by discover/search, or as returned by the detail endpoint."""

    id: int
    title: str
    original_title: str | None = None
    release_date: date | None = None
    popularity: float | None = None
    vote_count: int | None = None
    vote_average: float | None = None
    poster_path: str | None = None
    imdb_id: str | None = None
    external_ids: ExternalIdsPayload | None = None

    _normalize_text = field_validator("release_date", "poster_path", "imdb_id", mode="before")(
        _blank_to_none
    )

    @property
    def resolved_imdb_id(self) -> str | None:
        if self.imdb_id:
            return self.imdb_id
        return self.external_ids.imdb_id if self.external_ids else None


class PersonPayload(TmdbBaseModel):
    id: int
    name: str
    known_for_department: str | None = None
    popularity: float | None = None
    profile_path: str | None = None
    imdb_id: str | None = None
    external_ids: ExternalIdsPayload | None = None

    _normalize_text = field_validator(
        "known_for_department", "profile_path", "imdb_id", mode="before"
    )(_blank_to_none)

    @property
    def resolved_imdb_id(self) -> str | None:
        if self.imdb_id:
            return self.imdb_id
        return self.external_ids.imdb_id if self.external_ids else None


class MovieListResponse(TmdbBaseModel):
    """Paginated list shared by ``discover/movie`` and ``search/movie``."""

    page: int
    results: list[MoviePayload] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0


class FindResponse(TmdbBaseModel):
    movie_results: list[MoviePayload] = Field(default_factory=list)
    person_results: list[PersonPayload] = Field(default_factory=list)


class ErrorResponse(TmdbBaseModel):
    status_code: int | None = None
    status_message: str = "unknown error"
    success: bool | None = None

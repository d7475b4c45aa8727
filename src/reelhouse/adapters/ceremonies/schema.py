"""Pydantic models for the two ceremony payload shapes.

Award data arrives either as a flat list of categories, each carrying its
nominees, or as a map keyed by award name. The shape is decided once, here, by
a callable discriminator; nothing downstream branches on it again.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)

type PayloadShape = Literal["flat", "keyed"]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class CeremonyBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FilmPayload(CeremonyBaseModel):
    title: str | None = None
    year: int | None = None
    imdb_id: str | None = None
    tmdb_id: int | None = None

    _normalize_ids = field_validator("title", "imdb_id", mode="before")(_blank_to_none)


class PersonPayload(CeremonyBaseModel):
    name: str | None = None
    imdb_id: str | None = None
    tmdb_id: int | None = None

    _normalize_ids = field_validator("name", "imdb_id", mode="before")(_blank_to_none)


class NomineePayload(CeremonyBaseModel):
    """One nominee; films and people may be inline fields or nested lists."""

    name: str | None = None
    winner: bool = False
    film: str | None = None
    film_year: int | None = None
    film_imdb_id: str | None = None
    film_tmdb_id: int | None = None
    films: list[FilmPayload] = Field(default_factory=list)
    people: list[PersonPayload] = Field(default_factory=list)
    person_imdb_ids: list[str] = Field(default_factory=list)
    detail: str | None = None

    _normalize_text = field_validator("name", "film", "film_imdb_id", mode="before")(
        _blank_to_none
    )

    @field_validator("winner", mode="before")
    @classmethod
    def _null_winner(cls, value: object) -> object:
        return False if value is None else value

    @field_validator("films", "people", "person_imdb_ids", mode="before")
    @classmethod
    def _null_list(cls, value: object) -> object:
        return [] if value is None else value


class CategoryPayload(CeremonyBaseModel):
    category: str
    nominees: list[NomineePayload] = Field(default_factory=list)


class FlatCeremonyPayload(CeremonyBaseModel):
    """``{"categories": [{"category": ..., "nominees": [...]}]}``"""

    shape: Literal["flat"] = "flat"
    categories: list[CategoryPayload]


class KeyedCeremonyPayload(CeremonyBaseModel):
    """``{"awards": {"<award name>": [...nominees]}}``"""

    shape: Literal["keyed"] = "keyed"
    awards: dict[str, list[NomineePayload]]


def payload_shape(value: object) -> PayloadShape | None:
    """Pick the union member from the raw payload; ``None`` fails validation."""

    if isinstance(value, BaseModel):
        return getattr(value, "shape", None)
    if not isinstance(value, Mapping):
        return None
    if isinstance(value.get("categories"), list):
        return "flat"
    if isinstance(value.get("awards"), Mapping):
        return "keyed"
    return None


CeremonyPayload = Annotated[
    Annotated[FlatCeremonyPayload, Tag("flat")] | Annotated[KeyedCeremonyPayload, Tag("keyed")],
    Discriminator(payload_shape),
]

CEREMONY_PAYLOAD_ADAPTER: TypeAdapter[CeremonyPayload] = TypeAdapter(CeremonyPayload)

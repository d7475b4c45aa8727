"""Translate TMDb payloads into transient ``CatalogItem``s."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reelhouse.domain.model import CatalogItem, EntityKind, ExternalNamespace, ExternalRef

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .schema import MoviePayload, PersonPayload


def movie_item(payload: MoviePayload, *, raw: Mapping[str, object] | None = None) -> CatalogItem:
    imdb_id = payload.resolved_imdb_id
    return CatalogItem(
        kind=EntityKind.MOVIE,
        external_id=ExternalRef(ExternalNamespace.TMDB_MOVIE, str(payload.id)),
        title=payload.title,
        popularity=payload.popularity,
        vote_count=payload.vote_count,
        image_ref=payload.poster_path,
        release_date=payload.release_date,
        cross_references=(ExternalRef(ExternalNamespace.IMDB_TITLE, imdb_id),) if imdb_id else (),
        raw_payload=dict(raw) if raw is not None else payload.model_dump(mode="json"),
    )


def person_item(
    payload: PersonPayload, *, raw: Mapping[str, object] | None = None
) -> CatalogItem:
    imdb_id = payload.resolved_imdb_id
    return CatalogItem(
        kind=EntityKind.PERSON,
        external_id=ExternalRef(ExternalNamespace.TMDB_PERSON, str(payload.id)),
        title=payload.name,
        popularity=payload.popularity,
        image_ref=payload.profile_path,
        department=payload.known_for_department,
        cross_references=(ExternalRef(ExternalNamespace.IMDB_NAME, imdb_id),) if imdb_id else (),
        raw_payload=dict(raw) if raw is not None else payload.model_dump(mode="json"),
    )

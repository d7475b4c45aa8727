"""Normalize validated ceremony payloads into canonical ``CeremonyRecord``s."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from reelhouse.domain.ceremony import (
    CeremonyRecord,
    FilmReference,
    NomineeRecord,
    PersonReference,
)
from reelhouse.domain.errors import MalformedPayloadError
from reelhouse.domain.model import ExternalNamespace, ExternalRef

from .schema import (
    CEREMONY_PAYLOAD_ADAPTER,
    FlatCeremonyPayload,
    KeyedCeremonyPayload,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .schema import CeremonyPayload, FilmPayload, NomineePayload, PersonPayload

log = getLogger(__name__)


def parse_ceremony_payload(raw: object, *, organization: str, year: int) -> CeremonyRecord:
    """Validate ``raw`` against the known shapes and normalize it.

    Raises ``MalformedPayloadError`` when the payload matches neither shape.
    """

    try:
        payload = CEREMONY_PAYLOAD_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise MalformedPayloadError(
            f"Ceremony payload for {organization} {year} matches no known shape: "
            f"{exc.error_count()} validation error(s)"
        ) from exc
    return translate_ceremony(payload, organization=organization, year=year)


def translate_ceremony(
    payload: CeremonyPayload, *, organization: str, year: int
) -> CeremonyRecord:
    nominees = tuple(
        _nominee(category, nominee) for category, nominee in _category_nominees(payload)
    )
    log.debug(
        "Parsed %s payload for %s %d: %d nominee(s)",
        payload.shape,
        organization,
        year,
        len(nominees),
    )
    return CeremonyRecord(organization=organization, year=year, nominees=nominees)


def _category_nominees(payload: CeremonyPayload) -> Iterator[tuple[str, NomineePayload]]:
    match payload:
        case FlatCeremonyPayload(categories=categories):
            for category in categories:
                for nominee in category.nominees:
                    yield category.category, nominee
        case KeyedCeremonyPayload(awards=awards):
            for award, nominees in awards.items():
                for nominee in nominees:
                    yield award, nominee


def _nominee(category: str, payload: NomineePayload) -> NomineeRecord:
    details: dict[str, object] = {}
    if payload.detail:
        details["detail"] = payload.detail
    return NomineeRecord(
        category=category,
        nominee_name=payload.name,
        films=_films(payload),
        people=_people(payload),
        won=payload.winner,
        details=details,
    )


def _films(payload: NomineePayload) -> tuple[FilmReference, ...]:
    films: list[FilmReference] = []
    if payload.film or payload.film_imdb_id or payload.film_tmdb_id:
        films.append(
            FilmReference(
                title=payload.film,
                year=payload.film_year,
                external_ids=_film_refs(payload.film_imdb_id, payload.film_tmdb_id),
            )
        )
    films.extend(_film(film) for film in payload.films)
    return tuple(films)


def _film(film: FilmPayload) -> FilmReference:
    return FilmReference(
        title=film.title,
        year=film.year,
        external_ids=_film_refs(film.imdb_id, film.tmdb_id),
    )


def _film_refs(imdb_id: str | None, tmdb_id: int | None) -> tuple[ExternalRef, ...]:
    refs: list[ExternalRef] = []
    if tmdb_id is not None:
        refs.append(ExternalRef(ExternalNamespace.TMDB_MOVIE, str(tmdb_id)))
    if imdb_id:
        refs.append(ExternalRef(ExternalNamespace.IMDB_TITLE, imdb_id))
    return tuple(refs)


def _people(payload: NomineePayload) -> tuple[PersonReference, ...]:
    people = [_person(person) for person in payload.people]
    listed = {ref.value for person in people for ref in person.external_ids}
    extra_ids = [
        imdb_id.strip()
        for imdb_id in payload.person_imdb_ids
        if imdb_id.strip() and imdb_id.strip() not in listed
    ]
    # a bare id list only names the person when there is exactly one of them
    name = payload.name if len(extra_ids) == 1 and not people else None
    people.extend(
        PersonReference(
            name=name, external_ids=(ExternalRef(ExternalNamespace.IMDB_NAME, imdb_id),)
        )
        for imdb_id in dict.fromkeys(extra_ids)
    )
    return tuple(people)


def _person(person: PersonPayload) -> PersonReference:
    refs: list[ExternalRef] = []
    if person.tmdb_id is not None:
        refs.append(ExternalRef(ExternalNamespace.TMDB_PERSON, str(person.tmdb_id)))
    if person.imdb_id:
        refs.append(ExternalRef(ExternalNamespace.IMDB_NAME, person.imdb_id))
    return PersonReference(name=person.name, external_ids=tuple(refs))

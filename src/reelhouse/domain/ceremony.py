"""Canonical ceremony records and award-category rules.

Source payloads come in more than one shape; adapters normalize all of them
into ``CeremonyRecord`` before anything in the import pipeline sees them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from reelhouse.domain.model import CategoryType, ExternalRef, ordered_refs

if TYPE_CHECKING:
    from collections.abc import Mapping

ACADEMY_AWARDS: Final[str] = "oscars"
_FIRST_ACADEMY_AWARDS_YEAR: Final[int] = 1928  # award year of the 1st ceremony


@dataclass(frozen=True, slots=True)
class FilmReference:
    title: str | None = None
    year: int | None = None
    external_ids: tuple[ExternalRef, ...] = ()

    @property
    def primary_ref(self) -> ExternalRef | None:
        refs = ordered_refs(self.external_ids)
        return refs[0] if refs else None


@dataclass(frozen=True, slots=True)
class PersonReference:
    name: str | None = None
    external_ids: tuple[ExternalRef, ...] = ()

    @property
    def primary_ref(self) -> ExternalRef | None:
        refs = ordered_refs(self.external_ids)
        return refs[0] if refs else None


@dataclass(frozen=True, slots=True)
class NomineeRecord:
    category: str
    nominee_name: str | None = None
    films: tuple[FilmReference, ...] = ()
    people: tuple[PersonReference, ...] = ()
    won: bool = False
    details: Mapping[str, object] = field(default_factory=dict)

    @property
    def film(self) -> FilmReference | None:
        """The film a nomination is attached to: the first one carrying an id."""

        for film in self.films:
            if film.primary_ref is not None:
                return film
        return self.films[0] if self.films else None


@dataclass(frozen=True, slots=True)
class CeremonyRecord:
    organization: str
    year: int
    nominees: tuple[NomineeRecord, ...] = ()

    @property
    def batch_key(self) -> str:
        return ceremony_batch_key(self.organization, self.year)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(nominee.category for nominee in self.nominees))


def ceremony_batch_key(organization: str, year: int) -> str:
    return f"ceremony:{organization.strip().lower()}:{year}"


def ceremony_number(organization: str, year: int) -> int | None:
    """Ordinal of the ceremony for award ``year``; only known for the Academy Awards."""

    if organization.strip().lower() != ACADEMY_AWARDS:
        return None
    number = year - _FIRST_ACADEMY_AWARDS_YEAR + 1
    return number if number >= 1 else None


def prize_name(organization: str, category: str) -> str | None:
    if organization.strip().lower() != ACADEMY_AWARDS:
        return None
    return "Academy Award" if category == "Best Picture" else "Oscar"


_CATEGORY_RULES: Final[tuple[tuple[tuple[str, ...], CategoryType], ...]] = (
    (("Actor", "Actress", "Directing"), CategoryType.PERSON),
    (("Best Picture",), CategoryType.FILM),
    (("Writing", "Cinematography", "Editing"), CategoryType.PERSON),
    (("Visual Effects", "Sound", "Makeup"), CategoryType.TECHNICAL),
    (("Documentary", "Animated", "International"), CategoryType.FILM),
    (("Song", "Score"), CategoryType.TECHNICAL),
    (("Design", "Costume"), CategoryType.TECHNICAL),
)


def category_type(category: str) -> CategoryType:
    """Classify a category name; rule order matters ("Sound Editing" is a person award)."""

    for keywords, kind in _CATEGORY_RULES:
        if any(keyword in category for keyword in keywords):
            return kind
    return CategoryType.SPECIAL


def tracks_people(category: str) -> bool:
    return category_type(category) is CategoryType.PERSON

"""Locally materialized catalog entities."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from reelhouse.domain.model.enums import Depth, EntityKind

if TYPE_CHECKING:
    from datetime import date, datetime


@dataclass(eq=False, kw_only=True)
class Entity:
    """Base for entities keyed by external identifiers.

    Identifiers live in the external-id claim table, not on the entity row; an
    entity is created once and only ever has its depth upgraded.
    """

    kind: ClassVar[EntityKind]

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    depth: Depth = Depth.SOFT
    popularity: float | None = None
    raw_payload: dict[str, object] = field(default_factory=dict)
    enrichment_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def is_full(self) -> bool:
        return self.depth is Depth.FULL

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.kind is other.kind and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.kind, self.id))


@dataclass(eq=False, kw_only=True)
class Movie(Entity):
    kind: ClassVar[EntityKind] = EntityKind.MOVIE

    title: str
    release_date: date | None = None

    @property
    def label(self) -> str:
        return self.title


@dataclass(eq=False, kw_only=True)
class Person(Entity):
    kind: ClassVar[EntityKind] = EntityKind.PERSON

    name: str
    known_for_department: str | None = None

    @property
    def label(self) -> str:
        return self.name


ENTITY_CLASSES: dict[EntityKind, type[Entity]] = {
    EntityKind.MOVIE: Movie,
    EntityKind.PERSON: Person,
}

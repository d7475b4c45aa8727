"""External identifiers and their ownership.

An ``ExternalRef`` is a value (namespace + value) used throughout the import
pipeline; an ``ExternalID`` is the persisted claim binding one reference to one
entity. The claim table is the arbiter of entity identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from reelhouse.domain.model.enums import EntityKind, ExternalNamespace, Provider

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID


_KIND_BY_NAMESPACE: Final[dict[ExternalNamespace, EntityKind]] = {
    ExternalNamespace.TMDB_MOVIE: EntityKind.MOVIE,
    ExternalNamespace.IMDB_TITLE: EntityKind.MOVIE,
    ExternalNamespace.TITLE_QUERY: EntityKind.MOVIE,
    ExternalNamespace.TMDB_PERSON: EntityKind.PERSON,
    ExternalNamespace.IMDB_NAME: EntityKind.PERSON,
}

_PROVIDER_BY_NAMESPACE: Final[dict[ExternalNamespace, Provider]] = {
    ExternalNamespace.TMDB_MOVIE: Provider.TMDB,
    ExternalNamespace.TMDB_PERSON: Provider.TMDB,
    ExternalNamespace.IMDB_TITLE: Provider.IMDB,
    ExternalNamespace.IMDB_NAME: Provider.IMDB,
}

# Lower sorts first: catalog ids win over cross-references.
_PRIORITY: Final[dict[ExternalNamespace, int]] = {
    ExternalNamespace.TMDB_MOVIE: 0,
    ExternalNamespace.TMDB_PERSON: 0,
    ExternalNamespace.IMDB_TITLE: 1,
    ExternalNamespace.IMDB_NAME: 1,
    ExternalNamespace.TITLE_QUERY: 9,
}


def kind_for(namespace: ExternalNamespace) -> EntityKind:
    return _KIND_BY_NAMESPACE[namespace]


def provider_for(namespace: ExternalNamespace) -> Provider | None:
    return _PROVIDER_BY_NAMESPACE.get(namespace)


@dataclass(frozen=True, slots=True)
class ExternalRef:
    namespace: ExternalNamespace
    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError(f"Empty external id value for {self.namespace}")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.value}"

    @property
    def kind(self) -> EntityKind:
        return kind_for(self.namespace)

    @property
    def is_identifier(self) -> bool:
        """Whether the reference may be claimed as a stable entity identifier."""

        return self.namespace is not ExternalNamespace.TITLE_QUERY

    @property
    def sort_key(self) -> tuple[int, str, str]:
        return (_PRIORITY[self.namespace], str(self.namespace), self.value)

    @classmethod
    def parse(cls, text: str) -> ExternalRef:
        """Inverse of ``str(ref)``: ``"imdb:title:tt0111161"``."""

        namespace, sep, value = text.rpartition(":")
        if not sep:
            raise ValueError(f"Not an external reference: {text!r}")
        try:
            return cls(ExternalNamespace(namespace), value)
        except ValueError as exc:
            raise ValueError(f"Not an external reference: {text!r}") from exc


def ordered_refs(
    refs: Iterable[ExternalRef], *, kind: EntityKind | None = None
) -> tuple[ExternalRef, ...]:
    """Deduplicate and order references by claim priority.

    Claims are always taken in this order so concurrent resolvers lock the same
    unique-index keys in the same sequence.
    """

    unique = {ref for ref in refs if kind is None or ref.kind is kind}
    return tuple(sorted(unique, key=lambda ref: ref.sort_key))


@dataclass(eq=False, kw_only=True)
class ExternalID:
    kind: EntityKind
    namespace: ExternalNamespace
    value: str
    entity_id: UUID
    created_at: datetime | None = None

    @property
    def ref(self) -> ExternalRef:
        return ExternalRef(self.namespace, self.value)

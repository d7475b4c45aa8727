"""Transient catalog items as returned by an external catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, cast

from reelhouse.domain.model.enums import EntityKind
from reelhouse.domain.model.external_ids import ExternalRef, ordered_refs

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogItem:
    """Raw attributes for one candidate entity. Never persisted as its own table."""

    kind: EntityKind
    external_id: ExternalRef
    title: str
    popularity: float | None = None
    vote_count: int | None = None
    image_ref: str | None = None
    release_date: date | None = None
    department: str | None = None
    cross_references: tuple[ExternalRef, ...] = ()
    raw_payload: Mapping[str, object] = field(default_factory=dict)

    @property
    def external_ids(self) -> tuple[ExternalRef, ...]:
        return ordered_refs((self.external_id, *self.cross_references), kind=self.kind)

    @property
    def release_year(self) -> int | None:
        return self.release_date.year if self.release_date else None

    def signals(self) -> dict[str, object]:
        """The admission inputs, in a shape suitable for audit records."""

        return {
            "has_image": self.image_ref is not None,
            "has_release_date": self.release_date is not None,
            "popularity": self.popularity,
            "vote_count": self.vote_count,
            "department": self.department,
        }

    def to_payload(self) -> dict[str, object]:
        return {
            "kind": str(self.kind),
            "external_id": str(self.external_id),
            "title": self.title,
            "popularity": self.popularity,
            "vote_count": self.vote_count,
            "image_ref": self.image_ref,
            "release_date": self.release_date.isoformat() if self.release_date else None,
            "department": self.department,
            "cross_references": [str(ref) for ref in self.cross_references],
            "raw_payload": dict(self.raw_payload),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CatalogItem:
        release_date = payload.get("release_date")
        raw_payload = payload.get("raw_payload") or {}
        return cls(
            kind=EntityKind(payload["kind"]),
            external_id=ExternalRef.parse(payload["external_id"]),
            title=str(payload["title"]),
            popularity=payload.get("popularity"),
            vote_count=payload.get("vote_count"),
            image_ref=payload.get("image_ref"),
            release_date=date.fromisoformat(release_date) if release_date else None,
            department=payload.get("department"),
            cross_references=tuple(
                ExternalRef.parse(text) for text in payload.get("cross_references", ())
            ),
            raw_payload=cast("dict[str, object]", dict(raw_payload)),
        )


@dataclass(frozen=True, slots=True)
class CatalogPage:
    """One unit of a discovery stream: a page, or a whole year partition."""

    position: int
    items: tuple[CatalogItem, ...]
    has_more: bool

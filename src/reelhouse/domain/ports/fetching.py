"""Ports for fetching data from external catalogs and award sources."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reelhouse.domain.ceremony import CeremonyRecord
    from reelhouse.domain.model import (
        CatalogItem,
        CatalogPage,
        EntityKind,
        ExternalRef,
        ImportCursor,
    )


@runtime_checkable
class CatalogSource(Protocol):
    """Paginated movie catalog with detail lookups.

    Every method may raise ``SourceUnavailableError`` and must be safe to retry.
    """

    async def fetch_page(self, cursor: ImportCursor, position: int) -> CatalogPage: ...

    async def fetch_detail(self, kind: EntityKind, ref: ExternalRef) -> CatalogItem | None:
        """Return full attributes for ``ref``, or ``None`` if the catalog has no match."""
        ...

    async def search_movies(
        self, title: str, *, year: int | None = None
    ) -> Sequence[CatalogItem]: ...


@runtime_checkable
class CeremonySource(Protocol):
    """Award/ceremony payloads, normalized into canonical nomination records.

    Raises ``MalformedPayloadError`` when the payload matches no known shape.
    """

    async def fetch(self, organization: str, year: int) -> CeremonyRecord: ...


__all__ = ["CatalogSource", "CeremonySource"]

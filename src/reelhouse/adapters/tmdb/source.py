"""``CatalogSource`` implementation on top of the TMDb client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.model import CatalogPage, EntityKind, ExternalNamespace, StreamKind

from .client import TmdbClient
from .translator import movie_item, person_item

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reelhouse.domain.model import CatalogItem, ExternalRef, ImportCursor
    from reelhouse.domain.ports import CatalogSource

log = getLogger(__name__)


@dataclass(slots=True)
class TmdbCatalogSource:
    """Discovery streams and detail lookups against TMDb.

    ``pages`` streams walk ``discover/movie`` one page per position, capped at the
    API's page limit. ``years`` streams treat each position as a release year and
    collect up to ``pages_per_year`` pages for it in one unit.
    """

    client: TmdbClient = field(default_factory=TmdbClient)

    async def fetch_page(self, cursor: ImportCursor, position: int) -> CatalogPage:
        if cursor.kind is StreamKind.YEARS:
            return await self._fetch_year(cursor, position)
        return await self._fetch_discover_page(cursor, position)

    async def _fetch_discover_page(self, cursor: ImportCursor, position: int) -> CatalogPage:
        response = await self.client.discover_movies(position, params=cursor.params)
        last_page = min(response.total_pages, self.client.config.max_pages)
        items = tuple(movie_item(movie) for movie in response.results)
        log.debug(
            "Stream %s page %d/%d: %d item(s)", cursor.stream, position, last_page, len(items)
        )
        return CatalogPage(position=position, items=items, has_more=position < last_page)

    async def _fetch_year(self, cursor: ImportCursor, year: int) -> CatalogPage:
        params = {**cursor.params, "primary_release_year": year}
        items: list[CatalogItem] = []
        page = 1
        while True:
            response = await self.client.discover_movies(page, params=params)
            items.extend(movie_item(movie) for movie in response.results)
            last_page = min(response.total_pages, self.client.config.pages_per_year)
            if page >= last_page:
                break
            page += 1
        final_year = cursor.end_position or datetime.now(UTC).year
        log.debug("Stream %s year %d: %d item(s)", cursor.stream, year, len(items))
        return CatalogPage(position=year, items=tuple(items), has_more=year < final_year)

    async def fetch_detail(self, kind: EntityKind, ref: ExternalRef) -> CatalogItem | None:
        if ref.kind is not kind:
            raise ValueError(f"{ref} does not identify a {kind}")
        match ref.namespace:
            case ExternalNamespace.TMDB_MOVIE:
                return await self._movie(ref.value)
            case ExternalNamespace.TMDB_PERSON:
                return await self._person(ref.value)
            case ExternalNamespace.IMDB_TITLE | ExternalNamespace.IMDB_NAME:
                return await self._cross_reference(kind, ref)
            case _:
                raise ValueError(f"{ref} cannot be looked up by id")

    async def _movie(self, tmdb_id: str) -> CatalogItem | None:
        found = await self.client.movie_details(tmdb_id)
        if found is None:
            return None
        payload, raw = found
        return movie_item(payload, raw=raw)

    async def _person(self, tmdb_id: str) -> CatalogItem | None:
        found = await self.client.person_details(tmdb_id)
        if found is None:
            return None
        payload, raw = found
        return person_item(payload, raw=raw)

    async def _cross_reference(self, kind: EntityKind, ref: ExternalRef) -> CatalogItem | None:
        """Translate an IMDb id to a catalog id, then fetch the catalog details."""

        response = await self.client.find_by_imdb(ref.value)
        if kind is EntityKind.MOVIE:
            if not response.movie_results:
                log.info("No catalog movie for %s", ref)
                return None
            return await self._movie(str(response.movie_results[0].id))
        if not response.person_results:
            log.info("No catalog person for %s", ref)
            return None
        return await self._person(str(response.person_results[0].id))

    async def search_movies(
        self, title: str, *, year: int | None = None
    ) -> Sequence[CatalogItem]:
        response = await self.client.search_movies(title, year=year)
        return tuple(movie_item(movie) for movie in response.results)


if TYPE_CHECKING:
    _source_check: CatalogSource = TmdbCatalogSource()

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import func, select

from reelhouse.adapters.sqlalchemy.mappings import external_id_table
from reelhouse.domain.catalog_items import process_catalog_item
from reelhouse.domain.errors import SourceUnavailableError
from reelhouse.domain.model import (
    AdmissionTier,
    Depth,
    EntityKind,
    ExternalNamespace,
    ExternalRef,
)
from reelhouse.domain.recovery import retry_enrichment
from reelhouse.domain.resolution import placeholder_item, resolve_or_create, resolve_reference
from tests.helpers.catalog import FakeCatalogSource, make_movie_item, make_person_item

if TYPE_CHECKING:
    from collections.abc import Callable

    from reelhouse.adapters.sqlalchemy.unit_of_work import SqlAlchemyImportUnitOfWork
    from reelhouse.domain.resolution import Resolution

TMDB_REF = ExternalRef(ExternalNamespace.TMDB_MOVIE, "278")
IMDB_REF = ExternalRef(ExternalNamespace.IMDB_TITLE, "tt0111161")


def _resolve(
    uow_factory: Callable[[], SqlAlchemyImportUnitOfWork],
    ref: ExternalRef,
    tier: AdmissionTier = AdmissionTier.FULL,
    *,
    imdb_id: str | None = None,
) -> Resolution:
    item = make_movie_item(278, "The Shawshank Redemption", imdb_id=imdb_id)
    with uow_factory() as uow:
        resolution = resolve_or_create(uow.repositories.entities, EntityKind.MOVIE, ref, item, tier)
        uow.commit()
    return resolution


def _count_movies(uow_factory: Callable[[], SqlAlchemyImportUnitOfWork]) -> int:
    with uow_factory() as uow:
        return uow.repositories.entities.count(EntityKind.MOVIE)


def test_resolve_or_create_is_idempotent(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    first = _resolve(sqlite_unit_of_work, TMDB_REF)
    second = _resolve(sqlite_unit_of_work, TMDB_REF)

    assert first.created
    assert not second.created
    assert second.entity.id == first.entity.id
    assert _count_movies(sqlite_unit_of_work) == 1


def test_cross_references_find_the_same_entity(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    first = _resolve(sqlite_unit_of_work, TMDB_REF, imdb_id=IMDB_REF.value)
    through_imdb = _resolve(sqlite_unit_of_work, IMDB_REF)

    assert through_imdb.entity.id == first.entity.id
    with sqlite_unit_of_work() as uow:
        refs = uow.repositories.entities.external_ids(EntityKind.MOVIE, first.entity.id)
    assert refs == (TMDB_REF, IMDB_REF)


def test_new_cross_reference_is_bound_to_the_existing_entity(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    first = _resolve(sqlite_unit_of_work, TMDB_REF)
    second = _resolve(sqlite_unit_of_work, TMDB_REF, imdb_id=IMDB_REF.value)

    assert second.entity.id == first.entity.id
    with sqlite_unit_of_work() as uow:
        found = uow.repositories.entities.get_by_external_id(IMDB_REF)
    assert found is not None
    assert found.id == first.entity.id


def test_soft_record_is_upgraded_but_never_downgraded(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    soft = _resolve(sqlite_unit_of_work, TMDB_REF, AdmissionTier.SOFT)
    full = _resolve(sqlite_unit_of_work, TMDB_REF, AdmissionTier.FULL)
    again = _resolve(sqlite_unit_of_work, TMDB_REF, AdmissionTier.SOFT)

    assert soft.entity.depth is Depth.SOFT
    assert full.upgraded
    assert full.entity.id == soft.entity.id
    assert full.entity.depth is Depth.FULL
    assert not again.upgraded
    assert again.entity.depth is Depth.FULL


def test_rejected_items_cannot_be_resolved(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    with pytest.raises(ValueError, match="Rejected"):
        _resolve(sqlite_unit_of_work, TMDB_REF, AdmissionTier.REJECT)


def test_reference_kind_must_match(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    person_ref = ExternalRef(ExternalNamespace.TMDB_PERSON, "1")

    with pytest.raises(ValueError, match="does not identify"):
        _resolve(sqlite_unit_of_work, person_ref)


def test_concurrent_resolvers_create_one_entity(
    file_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    def resolve(index: int) -> Resolution:
        # half the workers arrive through the cross-reference
        ref = IMDB_REF if index % 2 else TMDB_REF
        return _resolve(file_unit_of_work, ref, imdb_id=IMDB_REF.value)

    with ThreadPoolExecutor(max_workers=8) as pool:
        resolutions = list(pool.map(resolve, range(16)))

    assert len({resolution.entity.id for resolution in resolutions}) == 1
    assert sum(1 for resolution in resolutions if resolution.created) == 1
    assert _count_movies(file_unit_of_work) == 1
    with file_unit_of_work() as uow:
        claims = uow.session.execute(
            select(func.count()).select_from(external_id_table)
        ).scalar_one()
    assert claims == 2


def test_unavailable_catalog_stores_placeholder_for_enrichment(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    source = FakeCatalogSource([make_movie_item(278, "The Shawshank Redemption")])
    source.unavailable = True
    fallback = placeholder_item(TMDB_REF, {"name": "Shawshank"}, reason="catalog unavailable")
    assert fallback is not None

    outcome = asyncio.run(
        resolve_reference(
            TMDB_REF, uow_factory=sqlite_unit_of_work, source=source, fallback=fallback
        )
    )

    assert outcome.found
    assert not outcome.detail_fetched
    assert outcome.error == f"{TMDB_REF} unavailable"
    assert outcome.resolution is not None
    entity_id = outcome.resolution.entity.id
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.entities.get(EntityKind.MOVIE, entity_id)
        assert stored is not None
        assert stored.depth is Depth.SOFT
        assert stored.label == "Shawshank"
        assert stored.enrichment_error == f"{TMDB_REF} unavailable"

    source.unavailable = False
    report = asyncio.run(
        retry_enrichment(EntityKind.MOVIE, uow_factory=sqlite_unit_of_work, source=source)
    )

    assert (report.attempted, report.upgraded, report.still_failing) == (1, 1, 0)
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.entities.get(EntityKind.MOVIE, entity_id)
        assert stored is not None
        assert stored.depth is Depth.FULL
        assert stored.label == "The Shawshank Redemption"
        assert stored.enrichment_error is None
        assert uow.repositories.entities.pending_enrichment(EntityKind.MOVIE) == []


def test_enrichment_keeps_failing_placeholders(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    source = FakeCatalogSource()
    source.unavailable = True
    fallback = placeholder_item(TMDB_REF, {"name": "Shawshank"}, reason="catalog unavailable")
    asyncio.run(
        resolve_reference(
            TMDB_REF, uow_factory=sqlite_unit_of_work, source=source, fallback=fallback
        )
    )

    report = asyncio.run(
        retry_enrichment(EntityKind.MOVIE, uow_factory=sqlite_unit_of_work, source=source)
    )

    assert (report.attempted, report.upgraded, report.still_failing) == (1, 0, 1)


def test_unavailable_catalog_without_fallback_propagates(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    source = FakeCatalogSource()
    source.unavailable = True

    with pytest.raises(SourceUnavailableError):
        asyncio.run(resolve_reference(TMDB_REF, uow_factory=sqlite_unit_of_work, source=source))
    assert _count_movies(sqlite_unit_of_work) == 0


def test_referenced_reject_is_kept_as_soft(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    obscure = make_movie_item(
        278, "Obscure", popularity=0.0, vote_count=0, image_ref=None, release_date=None
    )
    source = FakeCatalogSource([obscure])

    outcome = asyncio.run(
        resolve_reference(TMDB_REF, uow_factory=sqlite_unit_of_work, source=source)
    )

    assert outcome.resolution is not None
    assert outcome.resolution.entity.depth is Depth.SOFT
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.admissions.count(tier=AdmissionTier.REJECT) == 1


def test_discovered_items_are_stored_at_their_tier(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    full = make_movie_item(1, "Popular", popularity=80.0)
    soft = make_movie_item(2, "Niche", popularity=0.1, vote_count=0, image_ref=None)
    rejected = make_movie_item(
        3, "Unknown", popularity=0.0, vote_count=0, image_ref=None, release_date=None
    )
    person = make_person_item(4, "Somebody", popularity=0.0, image_ref=None)
    source = FakeCatalogSource([full, person])

    async def run() -> list[AdmissionTier]:
        outcomes = [
            await process_catalog_item(item, uow_factory=sqlite_unit_of_work, source=source)
            for item in (full, soft, rejected, person)
        ]
        return [outcome.tier for outcome in outcomes]

    tiers = asyncio.run(run())

    assert tiers[:3] == [AdmissionTier.FULL, AdmissionTier.SOFT, AdmissionTier.REJECT]
    assert tiers[3] is AdmissionTier.SOFT
    assert source.detail_calls[0] == full.external_id
    assert _count_movies(sqlite_unit_of_work) == 2
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.entities.get_by_external_id(rejected.external_id) is None
        assert uow.repositories.entities.count(EntityKind.PERSON) == 1
        assert uow.repositories.admissions.count() >= 4

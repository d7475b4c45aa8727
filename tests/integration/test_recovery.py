from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from reelhouse.domain.discovery import open_cursor
from reelhouse.domain.errors import ManifestNotFoundError, ReelhouseError
from reelhouse.domain.import_pipeline import (
    RESOLVE_MANIFEST_ENTRY_TASK,
    collect_ceremony,
    enqueue_manifest_entries,
    resolve_entry,
    run_ceremony_import,
)
from reelhouse.domain.model import (
    CatalogPage,
    CursorStatus,
    EntryStatus,
    ExternalNamespace,
    ExternalRef,
    ManifestStatus,
)
from reelhouse.domain.policy import ImportSettings, JobRetryPolicy
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE, WorkUnit
from reelhouse.domain.recovery import (
    abandon_manifest,
    archive_manifest,
    find_stalled,
    resume_all,
    resume_cursor,
    resume_manifest,
)
from tests.helpers.catalog import (
    NOMINEES_PER_CATEGORY,
    PERSON_CATEGORIES,
    FakeCatalogSource,
    FakeCeremonySource,
    ceremony_catalog,
    film_imdb_id,
    make_movie_item,
    person_ceremony_payload,
)
from tests.helpers.queue import InMemoryWorkQueue

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from reelhouse.adapters.sqlalchemy.unit_of_work import SqlAlchemyImportUnitOfWork
    from reelhouse.domain.recovery import ManifestResume

CATEGORIES = PERSON_CATEGORIES[:2]
ENTRY_COUNT = NOMINEES_PER_CATEGORY + len(CATEGORIES) * NOMINEES_PER_CATEGORY
FIRST_FILM = ExternalRef(ExternalNamespace.IMDB_TITLE, film_imdb_id(0))
NO_PLACEHOLDERS = ImportSettings(
    retry=JobRetryPolicy(max_attempts=1, backoff_seconds=0),
    placeholder_on_unavailable=False,
)


def _ceremonies() -> FakeCeremonySource:
    return FakeCeremonySource({("oscars", 1995): person_ceremony_payload(CATEGORIES)})


def _collect(
    uow_factory: Callable[[], SqlAlchemyImportUnitOfWork], ceremonies: FakeCeremonySource
) -> UUID:
    result = asyncio.run(
        collect_ceremony("oscars", 1995, uow_factory=uow_factory, source=ceremonies)
    )
    return result.manifest_id


def _resume(
    uow_factory: Callable[[], SqlAlchemyImportUnitOfWork],
    manifest_id: UUID,
    catalog: FakeCatalogSource,
    ceremonies: FakeCeremonySource | None = None,
) -> ManifestResume:
    return asyncio.run(
        resume_manifest(
            manifest_id,
            uow_factory=uow_factory,
            catalog=catalog,
            ceremonies=ceremonies,
            settings=NO_PLACEHOLDERS,
        )
    )


def test_resume_finishes_a_manifest_stopped_after_collection(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())

    resumed = _resume(sqlite_unit_of_work, manifest_id, catalog)

    assert resumed.status is ManifestStatus.COMPLETE
    assert resumed.resolved == ENTRY_COUNT
    assert resumed.summary is not None
    assert resumed.summary.created == len(CATEGORIES) * NOMINEES_PER_CATEGORY


def test_resume_never_refetches_resolved_entries(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())
    with sqlite_unit_of_work() as uow:
        entries = uow.repositories.manifests.entities(manifest_id)
    done = entries[: ENTRY_COUNT // 2]

    async def resolve_some() -> None:
        for entry in done:
            await resolve_entry(entry.id, uow_factory=sqlite_unit_of_work, source=catalog)

    asyncio.run(resolve_some())
    catalog.detail_calls.clear()

    resumed = _resume(sqlite_unit_of_work, manifest_id, catalog)

    assert resumed.status is ManifestStatus.COMPLETE
    assert resumed.resolved == ENTRY_COUNT - len(done)
    assert len(catalog.detail_calls) == ENTRY_COUNT - len(done)
    assert not {entry.ref for entry in done} & set(catalog.detail_calls)


def test_resume_retries_failed_entries_and_relations(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    catalog.unavailable_refs.add(FIRST_FILM)
    context = asyncio.run(
        run_ceremony_import(
            "oscars",
            1995,
            uow_factory=sqlite_unit_of_work,
            catalog=catalog,
            ceremonies=_ceremonies(),
            settings=NO_PLACEHOLDERS,
        )
    )
    manifest_id = context.require_manifest_id()
    assert context.materialization is not None
    assert context.materialization.status is ManifestStatus.FAILED

    catalog.unavailable_refs.clear()
    catalog.detail_calls.clear()
    resumed = _resume(sqlite_unit_of_work, manifest_id, catalog)

    assert resumed.status is ManifestStatus.COMPLETE
    assert catalog.detail_calls == [FIRST_FILM]
    assert resumed.summary is not None
    assert resumed.summary.created == len(CATEGORIES)
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.nominations.count() == len(CATEGORIES) * NOMINEES_PER_CATEGORY
        counts = uow.repositories.manifests.entity_counts(manifest_id)
    assert counts == {EntryStatus.RESOLVED: ENTRY_COUNT}


def test_resume_recollects_when_collection_never_finished(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    ceremonies = _ceremonies()
    ceremonies.unavailable = True
    with pytest.raises(ReelhouseError):
        _collect(sqlite_unit_of_work, ceremonies)
    with sqlite_unit_of_work() as uow:
        [manifest] = uow.repositories.manifests.incomplete()
    assert manifest.status is ManifestStatus.COLLECTING

    ceremonies.unavailable = False
    resumed = _resume(sqlite_unit_of_work, manifest.id, catalog, ceremonies)

    assert resumed.status is ManifestStatus.COMPLETE
    assert ceremonies.calls == [("oscars", 1995), ("oscars", 1995)]


def test_resume_without_ceremony_source_cannot_recollect(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    ceremonies = _ceremonies()
    ceremonies.unavailable = True
    with pytest.raises(ReelhouseError):
        _collect(sqlite_unit_of_work, ceremonies)
    with sqlite_unit_of_work() as uow:
        [manifest] = uow.repositories.manifests.incomplete()

    with pytest.raises(ReelhouseError, match="needs a ceremony source"):
        _resume(sqlite_unit_of_work, manifest.id, ceremony_catalog(CATEGORIES))


def test_abandoned_manifest_is_skipped(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())

    abandoned = abandon_manifest(manifest_id, uow_factory=sqlite_unit_of_work)
    resumed = _resume(sqlite_unit_of_work, manifest_id, catalog)

    assert abandoned.abandoned
    assert abandoned.status is ManifestStatus.FAILED
    assert resumed.skipped
    assert catalog.detail_calls == []
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.manifests.incomplete() == []


def test_complete_manifest_cannot_be_abandoned_but_can_be_archived(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())
    _resume(sqlite_unit_of_work, manifest_id, catalog)

    with pytest.raises(ReelhouseError, match="already complete"):
        abandon_manifest(manifest_id, uow_factory=sqlite_unit_of_work)
    archived = archive_manifest(manifest_id, uow_factory=sqlite_unit_of_work)

    assert archived.archived_at is not None
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.manifests.list_all() == []
        assert len(uow.repositories.manifests.list_all(include_archived=True)) == 1


def test_unknown_manifest_is_reported(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    with pytest.raises(ManifestNotFoundError):
        abandon_manifest(uuid4(), uow_factory=sqlite_unit_of_work)


def test_find_stalled_flags_idle_cursors(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    open_cursor("popular", uow_factory=sqlite_unit_of_work)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())
    queue = InMemoryWorkQueue()
    later = datetime.now(UTC) + timedelta(hours=2)

    stalled = find_stalled(
        uow_factory=sqlite_unit_of_work, queue=queue, threshold=timedelta(hours=1), now=later
    )

    assert stalled.cursors == ("popular",)
    assert stalled.manifests == ("ceremony:oscars:1995",)
    with sqlite_unit_of_work() as uow:
        cursor = uow.repositories.cursors.get("popular")
        manifest = uow.repositories.manifests.get(manifest_id)
    assert cursor is not None
    assert cursor.status is CursorStatus.STALLED
    assert manifest is not None
    assert manifest.status is ManifestStatus.RESOLVING


def test_find_stalled_waits_for_a_busy_queue(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    open_cursor("popular", uow_factory=sqlite_unit_of_work)
    queue = InMemoryWorkQueue()
    queue.enqueue(WorkUnit(queue=CATALOG_ITEMS_QUEUE, task="resolve_catalog_item"))

    stalled = find_stalled(
        uow_factory=sqlite_unit_of_work,
        queue=queue,
        threshold=timedelta(hours=1),
        now=datetime.now(UTC) + timedelta(hours=2),
    )

    assert stalled.cursors == ()


def test_find_stalled_skips_manifests_while_entries_are_queued(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    open_cursor("popular", uow_factory=sqlite_unit_of_work)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())
    queue = InMemoryWorkQueue()
    queue.enqueue(
        WorkUnit(
            queue=MANIFEST_QUEUE,
            task=RESOLVE_MANIFEST_ENTRY_TASK,
            payload={"manifest_id": str(manifest_id), "entry_id": str(uuid4())},
        )
    )

    stalled = find_stalled(
        uow_factory=sqlite_unit_of_work,
        queue=queue,
        threshold=timedelta(hours=1),
        now=datetime.now(UTC) + timedelta(hours=2),
    )

    assert stalled.manifests == ()
    assert stalled.cursors == ("popular",)


def test_resume_all_defers_manifests_while_entries_are_queued(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    manifest_id = _collect(sqlite_unit_of_work, _ceremonies())
    queue = InMemoryWorkQueue()
    queued = enqueue_manifest_entries(manifest_id, uow_factory=sqlite_unit_of_work, queue=queue)

    report = asyncio.run(resume_all(uow_factory=sqlite_unit_of_work, catalog=catalog, queue=queue))

    assert queued == ENTRY_COUNT
    assert report.deferred == [manifest_id]
    assert report.manifests == []
    assert report.ok
    assert catalog.detail_calls == []


def test_resume_cursor_continues_after_the_last_completed_position(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = _paged_catalog()
    open_cursor("popular", uow_factory=sqlite_unit_of_work)
    queue = InMemoryWorkQueue()
    asyncio.run(
        resume_cursor(
            "popular", uow_factory=sqlite_unit_of_work, source=catalog, queue=queue, max_steps=1
        )
    )
    find_stalled(
        uow_factory=sqlite_unit_of_work,
        queue=InMemoryWorkQueue(),
        threshold=timedelta(hours=1),
        now=datetime.now(UTC) + timedelta(hours=2),
    )

    steps = asyncio.run(
        resume_cursor("popular", uow_factory=sqlite_unit_of_work, source=catalog, queue=queue)
    )

    assert catalog.page_calls == [1, 2]
    assert [step.position for step in steps] == [2]
    assert steps[-1].complete
    with sqlite_unit_of_work() as uow:
        cursor = uow.repositories.cursors.get("popular")
    assert cursor is not None
    assert cursor.status is CursorStatus.COMPLETE


def test_resume_all_continues_manifests_and_streams(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    catalog.pages = _paged_catalog().pages
    _collect(sqlite_unit_of_work, _ceremonies())
    open_cursor("popular", uow_factory=sqlite_unit_of_work)
    open_cursor("broken", uow_factory=sqlite_unit_of_work, start=7)
    catalog.failing_positions.add(7)
    queue = InMemoryWorkQueue()

    report = asyncio.run(
        resume_all(
            uow_factory=sqlite_unit_of_work,
            catalog=catalog,
            queue=queue,
            settings=NO_PLACEHOLDERS,
        )
    )

    assert [resumed.status for resumed in report.manifests] == [ManifestStatus.COMPLETE]
    assert [step.position for step in report.cursors["popular"]] == [1, 2]
    assert "cursor:broken" in report.errors
    assert not report.ok
    assert queue.counts(CATALOG_ITEMS_QUEUE).queued == 2


def _paged_catalog() -> FakeCatalogSource:
    first = make_movie_item(1, "First")
    second = make_movie_item(2, "Second")
    return FakeCatalogSource(
        [first, second],
        pages={
            1: CatalogPage(position=1, items=(first,), has_more=True),
            2: CatalogPage(position=2, items=(second,), has_more=False),
        },
    )

"""Application orchestration entry points.

Discovery and queued ceremony imports only enqueue work units; Celery workers
started with ``run_workers`` process them. Everything else runs inline.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Final

from reelhouse.adapters.celery import CeleryWorkQueue, run_worker
from reelhouse.adapters.ceremonies import FileCeremonySource, HttpCeremonySource
from reelhouse.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    is_started,
    startup,
)
from reelhouse.adapters.tmdb import TmdbCatalogSource
from reelhouse.config import get_import_settings
from reelhouse.config.admission import get_admission_thresholds
from reelhouse.domain.discovery import DiscoveryStepResult, open_cursor, run_discovery_step
from reelhouse.domain.import_pipeline import (
    ImportContext,
    collect_ceremony,
    enqueue_manifest_entries,
    run_ceremony_import,
    settle_manifest,
)
from reelhouse.domain.import_status import StatusReport
from reelhouse.domain.import_status import import_status as build_status
from reelhouse.domain.model import StreamKind
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE
from reelhouse.domain.recovery import (
    EnrichmentReport,
    ManifestResume,
    ResumeReport,
    abandon_manifest,
    find_stalled,
    resume_all,
    resume_manifest,
)
from reelhouse.domain.recovery import retry_enrichment as retry_enrichment_for

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.model import EntityKind, ImportManifest
    from reelhouse.domain.policy import ImportSettings
    from reelhouse.domain.ports import (
        CatalogSource,
        CeremonySource,
        UnitOfWorkFactory,
        WorkQueue,
    )

log = getLogger(__name__)

WORK_QUEUES: Final[tuple[str, ...]] = (CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE)


def default_unit_of_work_factory() -> UnitOfWorkFactory:
    """Start the SQLAlchemy adapter on first use and hand out its unit of work."""

    if not is_started():
        startup()
    return SqlAlchemyImportUnitOfWork


@dataclass(slots=True)
class DiscoveryRun:
    stream: str
    steps: list[DiscoveryStepResult] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return bool(self.steps) and self.steps[-1].complete

    @property
    def emitted(self) -> int:
        return sum(step.emitted for step in self.steps)


def discover_catalog(
    stream: str,
    *,
    kind: StreamKind = StreamKind.PAGES,
    start: int = 1,
    end: int | None = None,
    params: dict[str, object] | None = None,
    max_steps: int | None = None,
    uow_factory: UnitOfWorkFactory | None = None,
    catalog: CatalogSource | None = None,
    queue: WorkQueue | None = None,
) -> DiscoveryRun:
    """Walk a discovery stream, emitting one queued work unit per discovered item."""

    effective_uow = uow_factory or default_unit_of_work_factory()
    effective_catalog = catalog or TmdbCatalogSource()
    effective_queue = queue or CeleryWorkQueue()
    cursor = open_cursor(
        stream, uow_factory=effective_uow, kind=kind, start=start, end=end, params=params
    )
    log.info(
        "Starting discovery of %s (%s) at position %d", stream, cursor.kind, cursor.next_position
    )

    async def run() -> DiscoveryRun:
        result = DiscoveryRun(stream=stream)
        while max_steps is None or len(result.steps) < max_steps:
            step = await run_discovery_step(
                stream, uow_factory=effective_uow, source=effective_catalog, queue=effective_queue
            )
            result.steps.append(step)
            if step.complete or not step.advanced:
                break
        return result

    run_result = asyncio.run(run())
    log.info(
        "Finished discovery of %s: %d step(s), %d item(s) queued, complete=%s",
        stream,
        len(run_result.steps),
        run_result.emitted,
        run_result.complete,
    )
    return run_result


def import_ceremony(
    organization: str,
    year: int,
    *,
    payload_file: Path | None = None,
    queued: bool = False,
    uow_factory: UnitOfWorkFactory | None = None,
    catalog: CatalogSource | None = None,
    ceremonies: CeremonySource | None = None,
    queue: WorkQueue | None = None,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds | None = None,
) -> ImportContext:
    """Import one ceremony through collect, resolve and materialize.

    With ``queued`` the manifest is collected here and its entries are handed to
    the job queue; the worker finishing the last entry materializes it.
    """

    effective_uow = uow_factory or default_unit_of_work_factory()
    effective_catalog = catalog or TmdbCatalogSource()
    effective_ceremonies = ceremonies or (
        FileCeremonySource(payload_file) if payload_file is not None else HttpCeremonySource()
    )
    effective_settings = settings or get_import_settings()
    effective_thresholds = thresholds or get_admission_thresholds()
    log.info("Importing ceremony %s %d", organization, year)

    if not queued:
        context = asyncio.run(
            run_ceremony_import(
                organization,
                year,
                uow_factory=effective_uow,
                catalog=effective_catalog,
                ceremonies=effective_ceremonies,
                settings=effective_settings,
                thresholds=effective_thresholds,
            )
        )
    else:
        context = ImportContext(
            uow_factory=effective_uow,
            catalog=effective_catalog,
            ceremonies=effective_ceremonies,
            settings=effective_settings,
            thresholds=effective_thresholds,
            organization=organization,
            year=year,
        )
        asyncio.run(_import_ceremony_queued(context, queue or CeleryWorkQueue()))

    summary = context.materialization
    if summary is not None:
        log.info(
            "Ceremony %s %d: %d created, %d already present, %d failed, status=%s",
            organization,
            year,
            summary.created,
            summary.already_present,
            len(summary.failed),
            summary.status,
        )
    return context


async def _import_ceremony_queued(context: ImportContext, queue: WorkQueue) -> None:
    if context.ceremonies is None or context.organization is None or context.year is None:
        raise ValueError("A queued ceremony import needs a ceremony source and parameters")
    collection = await collect_ceremony(
        context.organization,
        context.year,
        uow_factory=context.uow_factory,
        source=context.ceremonies,
        fuzzy_matching=context.settings.fuzzy_matching,
    )
    context.collection = collection
    context.manifest_id = collection.manifest_id
    queued = enqueue_manifest_entries(
        collection.manifest_id, uow_factory=context.uow_factory, queue=queue
    )
    if queued == 0:
        # nothing left to resolve, so no worker will settle the manifest
        context.materialization = settle_manifest(
            collection.manifest_id, uow_factory=context.uow_factory
        )


def resume_imports(
    *,
    manifest_id: UUID | None = None,
    max_steps: int | None = None,
    uow_factory: UnitOfWorkFactory | None = None,
    catalog: CatalogSource | None = None,
    ceremonies: CeremonySource | None = None,
    queue: WorkQueue | None = None,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds | None = None,
) -> ResumeReport | ManifestResume:
    """Resume one manifest, or every unfinished manifest and cursor."""

    effective_uow = uow_factory or default_unit_of_work_factory()
    effective_catalog = catalog or TmdbCatalogSource()
    effective_ceremonies = ceremonies or HttpCeremonySource()
    effective_settings = settings or get_import_settings()
    effective_thresholds = thresholds or get_admission_thresholds()

    if manifest_id is not None:
        return asyncio.run(
            resume_manifest(
                manifest_id,
                uow_factory=effective_uow,
                catalog=effective_catalog,
                ceremonies=effective_ceremonies,
                settings=effective_settings,
                thresholds=effective_thresholds,
            )
        )

    effective_queue = queue or CeleryWorkQueue()
    find_stalled(
        uow_factory=effective_uow,
        queue=effective_queue,
        threshold=timedelta(seconds=effective_settings.stall_after_seconds),
    )
    report = asyncio.run(
        resume_all(
            uow_factory=effective_uow,
            catalog=effective_catalog,
            queue=effective_queue,
            ceremonies=effective_ceremonies,
            settings=effective_settings,
            thresholds=effective_thresholds,
            max_steps=max_steps,
        )
    )
    log.info(
        "Resumed %d manifest(s) and %d stream(s); %d deferred, %d error(s)",
        len(report.manifests),
        len(report.cursors),
        len(report.deferred),
        len(report.errors),
    )
    return report

    report = asyncio.run(run())
    log.info(
        "Resumed %d manifest(s) and %d stream(s); %d error(s)",
        len(report.manifests),
        len(report.cursors),
        len(report.errors),
    )
    return report


def abandon_import(
    manifest_id: UUID, *, uow_factory: UnitOfWorkFactory | None = None
) -> ImportManifest:
    return abandon_manifest(
        manifest_id, uow_factory=uow_factory or default_unit_of_work_factory()
    )


def import_status(
    *, include_archived: bool = False, uow_factory: UnitOfWorkFactory | None = None
) -> StatusReport:
    return build_status(
        uow_factory=uow_factory or default_unit_of_work_factory(),
        include_archived=include_archived,
    )


def retry_enrichment(
    kind: EntityKind,
    *,
    limit: int | None = None,
    uow_factory: UnitOfWorkFactory | None = None,
    catalog: CatalogSource | None = None,
    thresholds: AdmissionThresholds | None = None,
) -> EnrichmentReport:
    """Re-fetch details for placeholders whose catalog fetch failed earlier."""

    return asyncio.run(
        retry_enrichment_for(
            kind,
            uow_factory=uow_factory or default_unit_of_work_factory(),
            source=catalog or TmdbCatalogSource(),
            thresholds=thresholds or get_admission_thresholds(),
            limit=limit,
        )
    )


def run_workers(queues: Sequence[str] = WORK_QUEUES, *, concurrency: int | None = None) -> None:
    """Process queued work units in this process until it is stopped."""

    log.info("Starting worker for %s", ", ".join(queues))
    run_worker(queues, concurrency=concurrency)

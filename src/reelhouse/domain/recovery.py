"""Retry and resume: pick up exactly the unfinished work after a crash.

All state needed to resume lives in the manifest and cursor tables, so these
functions only ever look at persisted status; they never trust anything that was
held in memory by the process that died.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.admission import DEFAULT_THRESHOLDS
from reelhouse.domain.discovery import run_discovery
from reelhouse.domain.errors import (
    CursorNotFoundError,
    ManifestNotFoundError,
    ReelhouseError,
    SourceUnavailableError,
)
from reelhouse.domain.import_pipeline import (
    ImportContext,
    collect_ceremony,
    manifest_pipeline,
)
from reelhouse.domain.model import CursorStatus, ManifestStatus
from reelhouse.domain.policy import ImportSettings
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE
from reelhouse.domain.resolution import resolve_reference

if TYPE_CHECKING:
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.discovery import DiscoveryStepResult
    from reelhouse.domain.import_pipeline import MaterializationSummary
    from reelhouse.domain.model import EntityKind, ImportManifest
    from reelhouse.domain.ports import (
        CatalogSource,
        CeremonySource,
        UnitOfWorkFactory,
        WorkQueue,
    )

log = getLogger(__name__)

ABANDONED = "abandoned"


@dataclass(frozen=True, slots=True)
class ManifestResume:
    manifest_id: UUID
    batch_key: str
    status: ManifestStatus
    resolved: int = 0
    summary: MaterializationSummary | None = None
    skipped: bool = False


@dataclass(slots=True)
class ResumeReport:
    manifests: list[ManifestResume] = field(default_factory=list)
    cursors: dict[str, list[DiscoveryStepResult]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    # manifests left alone because the manifest queue still has their units
    deferred: list[UUID] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


async def resume_manifest(
    manifest_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    catalog: CatalogSource,
    ceremonies: CeremonySource | None = None,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
) -> ManifestResume:
    """Finish one manifest from wherever it stopped.

    Collection is repeated only when it never finished. Phase B then looks only at
    pending and failed entries, phase C only at relations not yet created.
    """

    active_settings = settings or ImportSettings()
    manifest = _load_manifest(manifest_id, uow_factory=uow_factory)
    if manifest.is_complete or manifest.abandoned:
        log.info("Manifest %s is %s; nothing to resume", manifest.batch_key, manifest.status)
        return ManifestResume(
            manifest_id=manifest_id,
            batch_key=manifest.batch_key,
            status=manifest.status,
            skipped=True,
        )

    if not manifest.is_collected:
        organization, year = _ceremony_params(manifest)
        if ceremonies is None:
            raise ReelhouseError(f"Manifest {manifest.batch_key} needs a ceremony source to resume")
        log.info("Re-collecting %s", manifest.batch_key)
        await collect_ceremony(
            organization,
            year,
            uow_factory=uow_factory,
            source=ceremonies,
            fuzzy_matching=active_settings.fuzzy_matching,
        )

    context = ImportContext(
        uow_factory=uow_factory,
        catalog=catalog,
        settings=active_settings,
        thresholds=thresholds,
        manifest_id=manifest_id,
        include_failed=True,
    )
    await manifest_pipeline().run(context)
    final = _load_manifest(manifest_id, uow_factory=uow_factory)
    return ManifestResume(
        manifest_id=manifest_id,
        batch_key=final.batch_key,
        status=final.status,
        resolved=context.resolution.resolved if context.resolution else 0,
        summary=context.materialization,
    )


async def resume_cursor(
    stream: str,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    queue: WorkQueue,
    max_steps: int | None = None,
) -> list[DiscoveryStepResult]:
    """Continue a discovery stream from ``last_completed_position + 1``."""

    now = datetime.now(UTC)
    with uow_factory() as uow:
        cursor = uow.repositories.cursors.get(stream)
        if cursor is None:
            raise CursorNotFoundError(f"No cursor for stream {stream!r}")
        if cursor.is_complete:
            return []
        if cursor.status is CursorStatus.STALLED:
            cursor.status = CursorStatus.IN_PROGRESS
            cursor.error = None
            cursor.updated_at = now
            uow.commit()
        position = cursor.next_position
    log.info("Resuming stream %s at position %d", stream, position)
    return await run_discovery(
        stream, uow_factory=uow_factory, source=source, queue=queue, max_steps=max_steps
    )


async def resume_all(
    *,
    uow_factory: UnitOfWorkFactory,
    catalog: CatalogSource,
    queue: WorkQueue,
    ceremonies: CeremonySource | None = None,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    max_steps: int | None = None,
) -> ResumeReport:
    """Resume every manifest and cursor that is not complete.

    One unit failing does not stop the others; its error is kept in the report.
    Manifests are deferred while the manifest queue still holds or runs units,
    since their entries are then still progressing.
    """

    with uow_factory() as uow:
        manifest_ids = [manifest.id for manifest in uow.repositories.manifests.incomplete()]
        streams = [cursor.stream for cursor in uow.repositories.cursors.incomplete()]

    report = ResumeReport()
    if manifest_ids and not queue.counts(MANIFEST_QUEUE).idle:
        log.info("Manifest queue busy; deferring %d manifest(s)", len(manifest_ids))
        report.deferred.extend(manifest_ids)
        manifest_ids = []
    for manifest_id in manifest_ids:
        try:
            report.manifests.append(
                await resume_manifest(
                    manifest_id,
                    uow_factory=uow_factory,
                    catalog=catalog,
                    ceremonies=ceremonies,
                    settings=settings,
                    thresholds=thresholds,
                )
            )
        except (ReelhouseError, LookupError) as exc:
            log.warning("Resuming manifest %s failed: %s", manifest_id, exc)
            report.errors[f"manifest:{manifest_id}"] = str(exc)

    for stream in streams:
        try:
            report.cursors[stream] = await resume_cursor(
                stream, uow_factory=uow_factory, source=catalog, queue=queue, max_steps=max_steps
            )
        except ReelhouseError as exc:
            log.warning("Resuming stream %s failed: %s", stream, exc)
            report.errors[f"cursor:{stream}"] = str(exc)
    return report


@dataclass(frozen=True, slots=True)
class StalledWork:
    cursors: tuple[str, ...] = ()
    manifests: tuple[str, ...] = ()


def find_stalled(
    *,
    uow_factory: UnitOfWorkFactory,
    queue: WorkQueue,
    threshold: timedelta,
    now: datetime | None = None,
) -> StalledWork:
    """Flag work that has not moved for ``threshold`` while its queue is idle.

    Cursors are judged against the catalog item queue and manifests against the
    manifest queue; a busy queue means its work is still progressing. Cursors are
    marked ``stalled``; manifests are only reported, since their status already
    says which phase they stopped in.
    """

    timestamp = now or datetime.now(UTC)
    check_cursors = queue.counts(CATALOG_ITEMS_QUEUE).idle
    check_manifests = queue.counts(MANIFEST_QUEUE).idle
    if not check_cursors:
        log.debug("Catalog item queue busy; not flagging stalled cursors")
    if not check_manifests:
        log.debug("Manifest queue busy; not reporting stale manifests")
    if not (check_cursors or check_manifests):
        return StalledWork()

    cutoff = timestamp - threshold
    stalled_cursors: list[str] = []
    stale_manifests: list[str] = []
    with uow_factory() as uow:
        repositories = uow.repositories
        if check_cursors:
            for cursor in repositories.cursors.incomplete():
                if cursor.status is CursorStatus.IN_PROGRESS and _older(cursor.updated_at, cutoff):
                    cursor.status = CursorStatus.STALLED
                    cursor.error = f"no progress since {cursor.updated_at}"
                    cursor.updated_at = timestamp
                    stalled_cursors.append(cursor.stream)
        if check_manifests:
            stale_manifests = [
                manifest.batch_key
                for manifest in repositories.manifests.incomplete()
                if _older(manifest.updated_at, cutoff)
            ]
        uow.commit()

    for stream in stalled_cursors:
        log.warning("Stream %s stalled", stream)
    for batch_key in stale_manifests:
        log.warning("Manifest %s has not progressed since before %s", batch_key, cutoff)
    return StalledWork(cursors=tuple(stalled_cursors), manifests=tuple(stale_manifests))


def abandon_manifest(manifest_id: UUID, *, uow_factory: UnitOfWorkFactory) -> ImportManifest:
    """Give up on a batch: it is marked failed and skipped by every resume."""

    with uow_factory() as uow:
        manifest = uow.repositories.manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        if manifest.is_complete:
            raise ReelhouseError(f"Manifest {manifest.batch_key} is already complete")
        manifest.status = ManifestStatus.FAILED
        manifest.abandoned = True
        manifest.error = ABANDONED
        manifest.updated_at = datetime.now(UTC)
        uow.commit()
    log.warning("Abandoned manifest %s", manifest.batch_key)
    return manifest


def archive_manifest(manifest_id: UUID, *, uow_factory: UnitOfWorkFactory) -> ImportManifest:
    with uow_factory() as uow:
        manifest = uow.repositories.manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        if not manifest.is_complete:
            raise ReelhouseError(f"Only complete manifests can be archived ({manifest.status})")
        if manifest.archived_at is None:
            manifest.archived_at = datetime.now(UTC)
            uow.commit()
    return manifest


@dataclass(frozen=True, slots=True)
class EnrichmentReport:
    attempted: int = 0
    upgraded: int = 0
    still_failing: int = 0


async def retry_enrichment(
    kind: EntityKind,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    limit: int | None = None,
) -> EnrichmentReport:
    """Re-fetch details for soft records whose earlier detail fetch failed."""

    with uow_factory() as uow:
        candidates = [
            ref for _, ref in uow.repositories.entities.pending_enrichment(kind, limit=limit)
        ]

    upgraded = still_failing = 0
    for ref in candidates:
        try:
            outcome = await resolve_reference(
                ref,
                uow_factory=uow_factory,
                source=source,
                thresholds=thresholds,
                source_label="enrichment",
            )
        except SourceUnavailableError as exc:
            log.info("Enrichment of %s still failing: %s", ref, exc)
            still_failing += 1
            continue
        resolution = outcome.resolution
        if resolution is not None and resolution.upgraded:
            upgraded += 1
    log.info("Enrichment of %s: %d attempted, %d upgraded", kind, len(candidates), upgraded)
    return EnrichmentReport(
        attempted=len(candidates), upgraded=upgraded, still_failing=still_failing
    )


def _load_manifest(manifest_id: UUID, *, uow_factory: UnitOfWorkFactory) -> ImportManifest:
    with uow_factory() as uow:
        manifest = uow.repositories.manifests.get(manifest_id)
    if manifest is None:
        raise ManifestNotFoundError(f"No manifest {manifest_id}")
    return manifest


def _ceremony_params(manifest: ImportManifest) -> tuple[str, int]:
    organization = manifest.params.get("organization")
    year = manifest.params.get("year")
    if not isinstance(organization, str) or not isinstance(year, int):
        raise ReelhouseError(f"Manifest {manifest.batch_key} has no ceremony parameters")
    return organization, year


def _older(moment: datetime | None, cutoff: datetime) -> bool:
    return moment is None or moment < cutoff



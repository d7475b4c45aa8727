"""Phase B: resolve every pending entity entry of a manifest.

Each entry is an independent unit: it can run inline (``resolve_manifest_entities``
gathers them under a semaphore) or as a queued work unit (``resolve_entry``), where
the queue owns the retry budget. Entries that are already resolved are never
fetched again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from reelhouse.domain.admission import DEFAULT_THRESHOLDS
from reelhouse.domain.errors import (
    MalformedPayloadError,
    ManifestNotFoundError,
    SourceUnavailableError,
)
from reelhouse.domain.matching import best_match, parse_title_query
from reelhouse.domain.model import (
    AdmissionTier,
    EntryStatus,
    ExternalNamespace,
    ManifestStatus,
)
from reelhouse.domain.policy import ImportSettings
from reelhouse.domain.ports import MANIFEST_QUEUE, WorkUnit
from reelhouse.domain.resolution import placeholder_item, resolve_or_create, resolve_reference

from .materialize import materialize

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.model import ExternalRef
    from reelhouse.domain.ports import CatalogSource, UnitOfWorkFactory, WorkQueue

    from .materialize import MaterializationSummary

log = getLogger(__name__)

RESOLVE_MANIFEST_ENTRY_TASK: Final[str] = "resolve_manifest_entry"

_DEFAULT_SETTINGS = ImportSettings()


@dataclass(frozen=True, slots=True)
class EntryOutcome:
    entry_id: UUID
    status: EntryStatus
    entity_id: UUID | None = None
    fetched: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ResolutionReport:
    manifest_id: UUID
    resolved: int = 0
    failed: int = 0
    fetched: int = 0
    status: ManifestStatus | None = None

    @property
    def attempted(self) -> int:
        return self.resolved + self.failed


async def resolve_entry(
    entry_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    settings: ImportSettings = _DEFAULT_SETTINGS,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
) -> EntryOutcome:
    """Make one resolution attempt for a manifest entry.

    Raises ``SourceUnavailableError`` when the catalog is down and no placeholder
    may be stored, so the caller can retry within its budget.
    """

    now = datetime.now(UTC)
    with uow_factory() as uow:
        entry = uow.repositories.manifests.get_entity(entry_id)
        if entry is None:
            raise ManifestNotFoundError(f"No manifest entry {entry_id}")
        if entry.status is EntryStatus.RESOLVED:
            return EntryOutcome(entry_id, EntryStatus.RESOLVED, entity_id=entry.entity_id)
        uow.repositories.manifests.record_attempt(entry_id, now=now)
        uow.commit()
        ref, hints, manifest_id = entry.ref, dict(entry.hints), entry.manifest_id

    confidence: float | None = None
    target: ExternalRef | None = ref
    if ref.namespace is ExternalNamespace.TITLE_QUERY:
        target, confidence = await _match_title(ref, hints, source, settings)
        if target is None:
            return _finish(
                entry_id,
                EntryStatus.FAILED,
                uow_factory=uow_factory,
                error=f"no catalog match for {hints.get('name') or ref.value!r}",
                fetched=True,
            )

    fallback = None
    if settings.placeholder_on_unavailable:
        fallback = placeholder_item(target, hints, reason="catalog unavailable")
    outcome = await resolve_reference(
        target,
        uow_factory=uow_factory,
        source=source,
        thresholds=thresholds,
        fallback=fallback,
        source_label=f"manifest:{manifest_id}",
    )
    if outcome.resolution is not None:
        return _finish(
            entry_id,
            EntryStatus.RESOLVED,
            uow_factory=uow_factory,
            entity_id=outcome.resolution.entity.id,
            confidence=confidence,
            fetched=outcome.detail_fetched,
            error=outcome.error,
        )

    placeholder = None
    if settings.placeholder_on_missing:
        placeholder = placeholder_item(target, hints, reason="not found in catalog")
    if placeholder is None:
        return _finish(
            entry_id,
            EntryStatus.FAILED,
            uow_factory=uow_factory,
            error=f"unresolvable: {outcome.error}",
            fetched=True,
        )

    with uow_factory() as uow:
        resolution = resolve_or_create(
            uow.repositories.entities, target.kind, target, placeholder, AdmissionTier.SOFT
        )
        uow.commit()
    log.info("Stored placeholder for %s (%s)", target, hints.get("name"))
    return _finish(
        entry_id,
        EntryStatus.RESOLVED,
        uow_factory=uow_factory,
        entity_id=resolution.entity.id,
        confidence=confidence,
        fetched=True,
        error=outcome.error,
    )


async def _match_title(
    ref: ExternalRef,
    hints: Mapping[str, object],
    source: CatalogSource,
    settings: ImportSettings,
) -> tuple[ExternalRef | None, float | None]:
    title, year = parse_title_query(ref.value)
    name = hints.get("name")
    if isinstance(name, str) and name:
        title = name
    candidates = await source.search_movies(title, year=year)
    match = best_match(title, year, candidates, threshold=settings.fuzzy_threshold)
    if match is None:
        log.info("No catalog match for %r (%s) above %.2f", title, year, settings.fuzzy_threshold)
        return None, None
    log.info(
        "Matched %r (%s) to %s with confidence %.2f",
        title,
        year,
        match.item.external_id,
        match.score,
    )
    return match.item.external_id, round(match.score, 4)


def _finish(
    entry_id: UUID,
    status: EntryStatus,
    *,
    uow_factory: UnitOfWorkFactory,
    entity_id: UUID | None = None,
    confidence: float | None = None,
    fetched: bool = False,
    error: str | None = None,
) -> EntryOutcome:
    with uow_factory() as uow:
        entry = uow.repositories.manifests.get_entity(entry_id)
        if entry is None:
            raise ManifestNotFoundError(f"No manifest entry {entry_id}")
        if entry.status is EntryStatus.RESOLVED and status is not EntryStatus.RESOLVED:
            # a concurrent attempt already won; never regress a resolved entry
            return EntryOutcome(entry_id, EntryStatus.RESOLVED, entity_id=entry.entity_id)
        entry.status = status
        entry.entity_id = entity_id
        entry.error = error
        if confidence is not None:
            entry.match_confidence = confidence
        entry.updated_at = datetime.now(UTC)
        uow.commit()
    if status is EntryStatus.FAILED:
        log.warning("Entry %s failed: %s", entry_id, error)
    return EntryOutcome(entry_id, status, entity_id=entity_id, fetched=fetched, error=error)


def mark_entry_exhausted(
    entry_id: UUID, error: str, *, uow_factory: UnitOfWorkFactory
) -> EntryOutcome:
    """Record an entry as failed once its retry budget is spent."""

    return _finish(entry_id, EntryStatus.FAILED, uow_factory=uow_factory, error=error)


async def _resolve_inline(
    entry_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    settings: ImportSettings,
    thresholds: AdmissionThresholds,
) -> EntryOutcome:
    # transport retries already ran in the HTTP client; a resume retries failed entries
    try:
        return await resolve_entry(
            entry_id,
            uow_factory=uow_factory,
            source=source,
            settings=settings,
            thresholds=thresholds,
        )
    except MalformedPayloadError as exc:
        return mark_entry_exhausted(entry_id, f"malformed detail: {exc}", uow_factory=uow_factory)
    except SourceUnavailableError as exc:
        return mark_entry_exhausted(entry_id, str(exc), uow_factory=uow_factory)


def _statuses(*, include_failed: bool) -> tuple[EntryStatus, ...]:
    if include_failed:
        return (EntryStatus.PENDING, EntryStatus.FAILED)
    return (EntryStatus.PENDING,)


async def resolve_manifest_entities(
    manifest_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    settings: ImportSettings = _DEFAULT_SETTINGS,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    include_failed: bool = False,
) -> ResolutionReport:
    """Resolve pending entries (and failed ones when ``include_failed``) concurrently."""

    statuses = _statuses(include_failed=include_failed)
    with uow_factory() as uow:
        manifests = uow.repositories.manifests
        manifest = manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        if manifest.abandoned or manifest.is_complete or not manifest.is_collected:
            return ResolutionReport(manifest_id=manifest_id, status=manifest.status)
        entry_ids = [entry.id for entry in manifests.entities(manifest_id, statuses=statuses)]
        if entry_ids and manifest.status is not ManifestStatus.RESOLVING:
            manifest.status = ManifestStatus.RESOLVING
            manifest.error = None
            manifest.updated_at = datetime.now(UTC)
            uow.commit()

    log.info("Resolving %d entries of manifest %s", len(entry_ids), manifest_id)
    semaphore = asyncio.Semaphore(settings.resolve_concurrency)

    async def run_one(entry_id: UUID) -> EntryOutcome:
        async with semaphore:
            return await _resolve_inline(
                entry_id,
                uow_factory=uow_factory,
                source=source,
                settings=settings,
                thresholds=thresholds,
            )

    outcomes = await asyncio.gather(*(run_one(entry_id) for entry_id in entry_ids))
    status = advance_after_resolution(manifest_id, uow_factory=uow_factory)
    report = ResolutionReport(
        manifest_id=manifest_id,
        resolved=sum(1 for outcome in outcomes if outcome.status is EntryStatus.RESOLVED),
        failed=sum(1 for outcome in outcomes if outcome.status is EntryStatus.FAILED),
        fetched=sum(1 for outcome in outcomes if outcome.fetched),
        status=status,
    )
    log.info(
        "Manifest %s: %d resolved, %d failed, %d detail fetches",
        manifest_id,
        report.resolved,
        report.failed,
        report.fetched,
    )
    return report


def advance_after_resolution(
    manifest_id: UUID, *, uow_factory: UnitOfWorkFactory
) -> ManifestStatus:
    """Move a resolving manifest to materializing once no entry is pending."""

    with uow_factory() as uow:
        manifests = uow.repositories.manifests
        manifest = manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        pending = manifests.entity_counts(manifest_id).get(EntryStatus.PENDING, 0)
        if manifest.status is ManifestStatus.RESOLVING and pending == 0:
            manifest.status = ManifestStatus.MATERIALIZING
            manifest.updated_at = datetime.now(UTC)
            uow.commit()
        return manifest.status


def enqueue_manifest_entries(
    manifest_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    queue: WorkQueue,
    include_failed: bool = False,
) -> int:
    """Emit one queued work unit per unresolved entry instead of resolving inline.

    The manifest moves to ``resolving``; the worker that finishes its last entry
    materializes it (see ``settle_manifest``).
    """

    statuses = _statuses(include_failed=include_failed)
    with uow_factory() as uow:
        manifests = uow.repositories.manifests
        manifest = manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        if manifest.abandoned or manifest.is_complete or not manifest.is_collected:
            return 0
        entry_ids = [entry.id for entry in manifests.entities(manifest_id, statuses=statuses)]
        if manifest.status is not ManifestStatus.RESOLVING:
            manifest.status = ManifestStatus.RESOLVING
            manifest.error = None
            manifest.updated_at = datetime.now(UTC)
            uow.commit()
    for entry_id in entry_ids:
        queue.enqueue(
            WorkUnit(
                queue=MANIFEST_QUEUE,
                task=RESOLVE_MANIFEST_ENTRY_TASK,
                payload={"manifest_id": str(manifest_id), "entry_id": str(entry_id)},
            )
        )
    log.info("Queued %d entries of manifest %s", len(entry_ids), manifest_id)
    return len(entry_ids)


def settle_manifest(
    manifest_id: UUID, *, uow_factory: UnitOfWorkFactory
) -> MaterializationSummary | None:
    """Materialize a queued manifest once none of its entries is pending.

    Every worker calls this after its entry; concurrent callers are harmless
    because materialization is idempotent.
    """

    status = advance_after_resolution(manifest_id, uow_factory=uow_factory)
    if status is not ManifestStatus.MATERIALIZING:
        return None
    return materialize(manifest_id, uow_factory=uow_factory)

"""Operator-facing summaries of manifests, cursors and admission decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from reelhouse.domain.ceremony import ceremony_batch_key
from reelhouse.domain.model import (
    AdmissionTier,
    CursorStatus,
    EntityKind,
    EntryStatus,
    ManifestStatus,
    RelationStatus,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from reelhouse.domain.model import ImportCursor, ImportManifest
    from reelhouse.domain.ports import ImportRepositories, UnitOfWorkFactory


class ImportLabel(StrEnum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    EMPTY = "empty"
    COMPLETED = "completed"
    PARTIAL = "partial"
    LOW_MATCH = "low_match"
    NO_MATCHES = "no_matches"
    FAILED = "failed"


COMPLETED_RATE = 0.9
PARTIAL_RATE = 0.5


@dataclass(frozen=True, slots=True)
class ManifestStatusRow:
    manifest_id: UUID
    batch_key: str
    status: ManifestStatus
    label: ImportLabel
    entities: Mapping[EntryStatus, int] = field(default_factory=dict)
    relations: Mapping[RelationStatus, int] = field(default_factory=dict)
    error: str | None = None

    @property
    def total_relations(self) -> int:
        return sum(self.relations.values())

    @property
    def created(self) -> int:
        return self.relations.get(RelationStatus.CREATED, 0)

    @property
    def match_rate(self) -> float:
        total = self.total_relations
        return self.created / total if total else 0.0


@dataclass(frozen=True, slots=True)
class CursorStatusRow:
    stream: str
    status: CursorStatus
    last_completed_position: int
    end_position: int | None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    manifests: tuple[ManifestStatusRow, ...] = ()
    cursors: tuple[CursorStatusRow, ...] = ()
    entities: Mapping[EntityKind, int] = field(default_factory=dict)
    admissions: Mapping[AdmissionTier, int] = field(default_factory=dict)

    @property
    def failed_manifests(self) -> tuple[ManifestStatusRow, ...]:
        return tuple(row for row in self.manifests if row.status is ManifestStatus.FAILED)

    @property
    def stalled_cursors(self) -> tuple[CursorStatusRow, ...]:
        return tuple(row for row in self.cursors if row.status is CursorStatus.STALLED)


def label_for(
    manifest: ImportManifest | None, relations: Mapping[RelationStatus, int]
) -> ImportLabel:
    """Summarize a manifest the way operators read an award import."""

    if manifest is None:
        return ImportLabel.NOT_STARTED
    failed_early = manifest.status is ManifestStatus.FAILED and not manifest.is_collected
    if manifest.abandoned or failed_early:
        return ImportLabel.FAILED
    if not manifest.is_collected:
        return ImportLabel.PENDING
    total = sum(relations.values())
    if total == 0:
        return ImportLabel.EMPTY
    if manifest.status in (ManifestStatus.RESOLVING, ManifestStatus.MATERIALIZING):
        return ImportLabel.PENDING
    rate = relations.get(RelationStatus.CREATED, 0) / total
    if rate >= COMPLETED_RATE:
        return ImportLabel.COMPLETED
    if rate >= PARTIAL_RATE:
        return ImportLabel.PARTIAL
    if rate > 0:
        return ImportLabel.LOW_MATCH
    return ImportLabel.NO_MATCHES


def _manifest_row(repositories: ImportRepositories, manifest: ImportManifest) -> ManifestStatusRow:
    relations = dict(repositories.manifests.relation_counts(manifest.id))
    return ManifestStatusRow(
        manifest_id=manifest.id,
        batch_key=manifest.batch_key,
        status=manifest.status,
        label=label_for(manifest, relations),
        entities=dict(repositories.manifests.entity_counts(manifest.id)),
        relations=relations,
        error=manifest.error,
    )


def _cursor_row(cursor: ImportCursor) -> CursorStatusRow:
    return CursorStatusRow(
        stream=cursor.stream,
        status=cursor.status,
        last_completed_position=cursor.last_completed_position,
        end_position=cursor.end_position,
        error=cursor.error,
    )


def import_status(
    *, uow_factory: UnitOfWorkFactory, include_archived: bool = False
) -> StatusReport:
    with uow_factory() as uow:
        repositories = uow.repositories
        manifests = tuple(
            _manifest_row(repositories, manifest)
            for manifest in repositories.manifests.list_all(include_archived=include_archived)
        )
        cursors = tuple(_cursor_row(cursor) for cursor in repositories.cursors.list_all())
        entities = {kind: repositories.entities.count(kind) for kind in EntityKind}
        admissions = {tier: repositories.admissions.count(tier=tier) for tier in AdmissionTier}
    return StatusReport(
        manifests=manifests, cursors=cursors, entities=entities, admissions=admissions
    )


def ceremony_status(
    organization: str, year: int, *, uow_factory: UnitOfWorkFactory
) -> ManifestStatusRow | None:
    """Status row for one ceremony, or ``None`` when it was never imported."""

    with uow_factory() as uow:
        repositories = uow.repositories
        manifest = repositories.manifests.get_by_batch_key(ceremony_batch_key(organization, year))
        if manifest is None:
            return None
        return _manifest_row(repositories, manifest)

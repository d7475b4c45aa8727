"""Phase C: create nominations whose entities are all resolved."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.errors import ManifestNotFoundError
from reelhouse.domain.model import (
    EntryStatus,
    ManifestStatus,
    Nomination,
    NominationRole,
    RelationStatus,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from reelhouse.domain.model import ImportManifest, ManifestEntity, ManifestRelation
    from reelhouse.domain.ports import ImportRepositories, UnitOfWorkFactory

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MaterializationSummary:
    manifest_id: UUID
    created: int = 0
    already_present: int = 0
    failed: Mapping[str, str] = field(default_factory=dict)
    unresolved_entities: tuple[str, ...] = ()
    pending: int = 0
    status: ManifestStatus | None = None


class _Blocked(Exception):  # noqa: N818
    def __init__(self, reason: str, unresolved: tuple[str, ...] = ()) -> None:
        super().__init__(reason)
        self.reason = reason
        self.unresolved = unresolved


def materialize(
    manifest_id: UUID, *, uow_factory: UnitOfWorkFactory, now: datetime | None = None
) -> MaterializationSummary:
    """Create every relation whose dependencies are resolved, in one transaction.

    Safe to run any number of times: relations already created are skipped and the
    nomination insert ignores rows that exist under the same unique key.
    """

    timestamp = now or datetime.now(UTC)
    with uow_factory() as uow:
        repositories = uow.repositories
        manifest = repositories.manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(f"No manifest {manifest_id}")
        if manifest.is_complete or manifest.abandoned or not manifest.is_collected:
            return MaterializationSummary(manifest_id=manifest_id, status=manifest.status)

        entries = {entry.ref_key: entry for entry in repositories.manifests.entities(manifest_id)}
        relations = repositories.manifests.relations(
            manifest_id, statuses=(RelationStatus.PENDING, RelationStatus.FAILED)
        )

        created = already_present = pending = 0
        failed: dict[str, str] = {}
        unresolved: set[str] = set()
        for relation in relations:
            label = f"{relation.category}|{relation.relation_key}"
            relation.updated_at = timestamp
            try:
                dependencies = _dependencies(relation, entries)
            except _Blocked as blocked:
                relation.status = RelationStatus.FAILED
                relation.error = blocked.reason
                failed[label] = blocked.reason
                unresolved.update(blocked.unresolved)
                continue
            if any(entry.status is EntryStatus.PENDING for entry in dependencies):
                relation.status = RelationStatus.PENDING
                relation.error = None
                pending += 1
                continue
            if _create(repositories, manifest, relation, dependencies, timestamp):
                created += 1
            else:
                already_present += 1

        status = _settle(manifest, pending=pending, failed=len(failed), now=timestamp)
        uow.commit()

    summary = MaterializationSummary(
        manifest_id=manifest_id,
        created=created,
        already_present=already_present,
        failed=failed,
        unresolved_entities=tuple(sorted(unresolved)),
        pending=pending,
        status=status,
    )
    log.info(
        "Materialized %s: %d created, %d already present, %d failed, %d pending -> %s",
        manifest.batch_key,
        created,
        already_present,
        len(failed),
        pending,
        status,
    )
    return summary


def _dependencies(
    relation: ManifestRelation, entries: Mapping[str, ManifestEntity]
) -> tuple[ManifestEntity, ...]:
    if relation.movie_ref is None or (
        relation.role is NominationRole.PERSON and relation.person_ref is None
    ):
        raise _Blocked(relation.error or "relation is missing an entity reference")

    dependencies: list[ManifestEntity] = []
    for ref in relation.dependencies:
        entry = entries.get(ref)
        if entry is None:
            raise _Blocked(f"no manifest entry for {ref}", (ref,))
        dependencies.append(entry)

    failures = [entry for entry in dependencies if entry.status is EntryStatus.FAILED]
    if failures:
        reason = "; ".join(f"{entry.ref_key}: {entry.error or 'unresolved'}" for entry in failures)
        raise _Blocked(reason, tuple(entry.ref_key for entry in failures))
    return tuple(dependencies)


def _create(
    repositories: ImportRepositories,
    manifest: ImportManifest,
    relation: ManifestRelation,
    dependencies: tuple[ManifestEntity, ...],
    now: datetime,
) -> bool:
    by_ref = {entry.ref_key: entry for entry in dependencies}
    movie_entry = by_ref[relation.movie_ref or ""]
    person_entry = by_ref.get(relation.person_ref or "")
    person_missing = person_entry is not None and person_entry.entity_id is None
    if movie_entry.entity_id is None or person_missing:
        raise RuntimeError(f"Resolved entry without entity in {relation.relation_key}")

    inserted = repositories.nominations.insert_if_absent(
        Nomination(
            batch_key=manifest.batch_key,
            category=relation.category,
            relation_key=relation.relation_key,
            role=relation.role,
            movie_id=movie_entry.entity_id,
            person_id=person_entry.entity_id if person_entry is not None else None,
            won=relation.won,
            details=dict(relation.details),
            created_at=now,
        )
    )
    stored = repositories.nominations.get_by_key(
        manifest.batch_key, relation.category, relation.relation_key
    )
    if stored is None:
        raise RuntimeError(f"Nomination {relation.relation_key} missing after insert")
    relation.status = RelationStatus.CREATED
    relation.nomination_id = stored.id
    relation.error = None
    return inserted


def _settle(
    manifest: ImportManifest, *, pending: int, failed: int, now: datetime
) -> ManifestStatus:
    if pending:
        return manifest.status
    if failed:
        manifest.status = ManifestStatus.FAILED
        manifest.error = f"{failed} relation(s) failed"
    else:
        manifest.status = ManifestStatus.COMPLETE
        manifest.error = None
        manifest.completed_at = now
    manifest.updated_at = now
    return manifest.status

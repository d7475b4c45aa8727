"""Ports for persisting import state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from reelhouse.domain.model import (
        AdmissionRecord,
        AdmissionTier,
        Entity,
        EntityKind,
        EntryStatus,
        ExternalRef,
        ImportCursor,
        ImportManifest,
        ManifestEntity,
        ManifestRelation,
        Nomination,
        RelationStatus,
    )


@runtime_checkable
class EntityRepository(Protocol):
    """Storage primitives for movies and people.

    ``claim`` and ``insert_if_absent`` must be single atomic statements resolved by
    the database's conflict handling; callers never check for existence first.
    """

    def claim(
        self, kind: EntityKind, refs: Sequence[ExternalRef], entity_id: UUID
    ) -> dict[ExternalRef, UUID]:
        """Bind each unclaimed ref to ``entity_id`` and return every ref's owner."""
        ...

    def rebind(self, kind: EntityKind, from_id: UUID, to_id: UUID) -> int: ...

    def insert_if_absent(self, entity: Entity) -> bool: ...

    def upgrade_to_full(self, entity: Entity, entity_id: UUID) -> bool:
        """Copy ``entity``'s attributes onto a soft row; no-op for full rows."""
        ...

    def record_enrichment_error(
        self, kind: EntityKind, entity_id: UUID, error: str | None
    ) -> None: ...

    def get(self, kind: EntityKind, entity_id: UUID) -> Entity | None: ...

    def get_by_external_id(self, ref: ExternalRef) -> Entity | None: ...

    def external_ids(self, kind: EntityKind, entity_id: UUID) -> tuple[ExternalRef, ...]: ...

    def pending_enrichment(
        self, kind: EntityKind, *, limit: int | None = None
    ) -> list[tuple[Entity, ExternalRef]]: ...

    def count(self, kind: EntityKind) -> int: ...


@runtime_checkable
class NominationRepository(Protocol):
    def insert_if_absent(self, nomination: Nomination) -> bool: ...

    def get_by_key(self, batch_key: str, category: str, relation_key: str) -> Nomination | None: ...

    def for_batch(self, batch_key: str) -> list[Nomination]: ...

    def count(self, batch_key: str | None = None) -> int: ...


@runtime_checkable
class ManifestRepository(Protocol):
    def create_if_absent(self, manifest: ImportManifest) -> ImportManifest: ...

    def get(self, manifest_id: UUID) -> ImportManifest | None: ...

    def get_by_batch_key(self, batch_key: str) -> ImportManifest | None: ...

    def add_entities(self, entries: Iterable[ManifestEntity]) -> int: ...

    def add_relations(self, relations: Iterable[ManifestRelation]) -> int: ...

    def get_entity(self, entry_id: UUID) -> ManifestEntity | None: ...

    def record_attempt(self, entry_id: UUID, *, now: datetime) -> bool:
        """Count one more attempt on an unresolved entry, atomically in SQL."""
        ...

    def entities(
        self, manifest_id: UUID, *, statuses: Iterable[EntryStatus] | None = None
    ) -> list[ManifestEntity]: ...

    def relations(
        self, manifest_id: UUID, *, statuses: Iterable[RelationStatus] | None = None
    ) -> list[ManifestRelation]: ...

    def entity_counts(self, manifest_id: UUID) -> Mapping[EntryStatus, int]: ...

    def relation_counts(self, manifest_id: UUID) -> Mapping[RelationStatus, int]: ...

    def incomplete(self) -> list[ImportManifest]: ...

    def list_all(self, *, include_archived: bool = False) -> list[ImportManifest]: ...


@runtime_checkable
class CursorRepository(Protocol):
    def get(self, stream: str) -> ImportCursor | None: ...

    def create_if_absent(self, cursor: ImportCursor) -> ImportCursor: ...

    def advance(self, stream: str, position: int, *, complete: bool, now: datetime) -> bool:
        """Compare-and-set ``last_completed_position`` from ``position - 1`` to ``position``."""
        ...

    def incomplete(self) -> list[ImportCursor]: ...

    def list_all(self) -> list[ImportCursor]: ...


@runtime_checkable
class AdmissionRepository(Protocol):
    def add(self, record: AdmissionRecord) -> None: ...

    def recent(
        self, *, tier: AdmissionTier | None = None, limit: int | None = None
    ) -> list[AdmissionRecord]: ...

    def count(self, *, tier: AdmissionTier | None = None) -> int: ...

"""Durable staging records for one import batch."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reelhouse.domain.model.enums import (
    EntityKind,
    EntryStatus,
    ExternalNamespace,
    ManifestStatus,
    NominationRole,
    RelationStatus,
)
from reelhouse.domain.model.external_ids import ExternalRef

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class ImportManifest:
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    batch_key: str
    source: str
    params: dict[str, object] = field(default_factory=dict)
    status: ManifestStatus = ManifestStatus.COLLECTING
    error: str | None = None
    abandoned: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    collected_at: datetime | None = None
    completed_at: datetime | None = None
    archived_at: datetime | None = None

    @property
    def is_collected(self) -> bool:
        return self.collected_at is not None

    @property
    def is_complete(self) -> bool:
        return self.status is ManifestStatus.COMPLETE


@dataclass(eq=False, kw_only=True)
class ManifestEntity:
    """One distinct entity reference needed by a batch."""

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    manifest_id: uuid.UUID
    kind: EntityKind
    namespace: ExternalNamespace
    value: str
    hints: dict[str, object] = field(default_factory=dict)
    status: EntryStatus = EntryStatus.PENDING
    entity_id: uuid.UUID | None = None
    attempts: int = 0
    error: str | None = None
    match_confidence: float | None = None
    updated_at: datetime | None = None

    @property
    def ref(self) -> ExternalRef:
        return ExternalRef(self.namespace, self.value)

    @property
    def ref_key(self) -> str:
        return str(self.ref)

    @property
    def display_name(self) -> str | None:
        name = self.hints.get("name")
        return str(name) if name else None


@dataclass(eq=False, kw_only=True)
class ManifestRelation:
    """One relation the batch must materialize, referencing entities by external id."""

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    manifest_id: uuid.UUID
    category: str
    role: NominationRole
    relation_key: str
    movie_ref: str | None = None
    person_ref: str | None = None
    won: bool = False
    details: dict[str, object] = field(default_factory=dict)
    status: RelationStatus = RelationStatus.PENDING
    nomination_id: uuid.UUID | None = None
    error: str | None = None
    updated_at: datetime | None = None

    @property
    def dependencies(self) -> tuple[str, ...]:
        return tuple(ref for ref in (self.movie_ref, self.person_ref) if ref is not None)

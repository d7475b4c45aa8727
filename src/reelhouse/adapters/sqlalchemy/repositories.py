"""Repository implementations backed by SQLAlchemy sessions.

Every write that can race with another worker is a single ``INSERT ... ON
CONFLICT DO NOTHING`` or a conditional ``UPDATE``; the row count tells the
caller whether it won.
"""

from __future__ import annotations

from datetime import UTC, datetime
from itertools import batched
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from reelhouse.adapters.sqlalchemy.mappings import (
    CLASS_BY_KIND,
    TABLE_BY_KIND,
    admission_decision_table,
    external_id_table,
    import_cursor_table,
    import_manifest_table,
    manifest_entity_table,
    manifest_relation_table,
    nomination_table,
)
from reelhouse.domain.model import (
    AdmissionRecord,
    CursorStatus,
    Depth,
    EntryStatus,
    ExternalRef,
    ImportCursor,
    ImportManifest,
    ManifestEntity,
    ManifestRelation,
    ManifestStatus,
    Nomination,
    RelationStatus,
    ordered_refs,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from uuid import UUID

    from sqlalchemy import Table
    from sqlalchemy.dialects.postgresql import Insert as PostgresqlInsert
    from sqlalchemy.dialects.sqlite import Insert as SqliteInsert
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.orm import Session

    from reelhouse.domain.model import AdmissionTier, Entity, EntityKind

# keeps multi-row inserts under SQLite's bound-parameter limit
_INSERT_CHUNK: Final[int] = 50


def _insert(session: Session, table: Table) -> SqliteInsert | PostgresqlInsert:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite_insert(table)
    if dialect == "postgresql":
        return postgresql_insert(table)
    raise NotImplementedError(f"Conflict-ignoring inserts are not supported on {dialect}")


def _rowcount(result: object) -> int:
    return cast("CursorResult[Any]", result).rowcount


def _row(table: Table, instance: object, *, exclude: Iterable[str] = ()) -> dict[str, Any]:
    skipped = set(exclude)
    return {
        column.key: getattr(instance, column.key)
        for column in table.columns
        if column.key not in skipped
    }


class SqlAlchemyEntityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def claim(
        self, kind: EntityKind, refs: Sequence[ExternalRef], entity_id: UUID
    ) -> dict[ExternalRef, UUID]:
        if not refs:
            return {}
        now = datetime.now(UTC)
        for ref in refs:
            stmt = (
                _insert(self.session, external_id_table)
                .values(
                    kind=kind,
                    namespace=ref.namespace,
                    value=ref.value,
                    entity_id=entity_id,
                    created_at=now,
                )
                .on_conflict_do_nothing(index_elements=["kind", "namespace", "value"])
            )
            self.session.execute(stmt)

        table = external_id_table
        stmt = select(table.c.namespace, table.c.value, table.c.entity_id).where(
            table.c.kind == kind,
            or_(
                *(
                    and_(table.c.namespace == ref.namespace, table.c.value == ref.value)
                    for ref in refs
                )
            ),
        )
        return {
            ExternalRef(namespace, value): owner
            for namespace, value, owner in self.session.execute(stmt).tuples()
        }

    def rebind(self, kind: EntityKind, from_id: UUID, to_id: UUID) -> int:
        stmt = (
            update(external_id_table)
            .where(external_id_table.c.kind == kind)
            .where(external_id_table.c.entity_id == from_id)
            .values(entity_id=to_id)
        )
        return _rowcount(self.session.execute(stmt))

    def insert_if_absent(self, entity: Entity) -> bool:
        table = TABLE_BY_KIND[entity.kind]
        stmt = (
            _insert(self.session, table)
            .values(**_row(table, entity))
            .on_conflict_do_nothing(index_elements=["id"])
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def upgrade_to_full(self, entity: Entity, entity_id: UUID) -> bool:
        table = TABLE_BY_KIND[entity.kind]
        values = _row(table, entity, exclude=("id", "created_at"))
        values.update(depth=Depth.FULL, enrichment_error=None)
        stmt = (
            update(table)
            .where(table.c.id == entity_id)
            .where(table.c.depth == Depth.SOFT)
            .values(**values)
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def record_enrichment_error(
        self, kind: EntityKind, entity_id: UUID, error: str | None
    ) -> None:
        table = TABLE_BY_KIND[kind]
        self.session.execute(
            update(table)
            .where(table.c.id == entity_id)
            .values(enrichment_error=error, updated_at=datetime.now(UTC))
        )

    def get(self, kind: EntityKind, entity_id: UUID) -> Entity | None:
        return self.session.get(CLASS_BY_KIND[kind], entity_id, populate_existing=True)

    def get_by_external_id(self, ref: ExternalRef) -> Entity | None:
        table = external_id_table
        stmt = (
            select(table.c.entity_id)
            .where(table.c.kind == ref.kind)
            .where(table.c.namespace == ref.namespace)
            .where(table.c.value == ref.value)
        )
        entity_id = self.session.execute(stmt).scalar_one_or_none()
        if entity_id is None:
            return None
        return self.get(ref.kind, entity_id)

    def external_ids(self, kind: EntityKind, entity_id: UUID) -> tuple[ExternalRef, ...]:
        table = external_id_table
        stmt = (
            select(table.c.namespace, table.c.value)
            .where(table.c.kind == kind)
            .where(table.c.entity_id == entity_id)
        )
        return ordered_refs(
            ExternalRef(namespace, value) for namespace, value in self.session.execute(stmt)
        )

    def pending_enrichment(
        self, kind: EntityKind, *, limit: int | None = None
    ) -> list[tuple[Entity, ExternalRef]]:
        table = TABLE_BY_KIND[kind]
        stmt = (
            select(CLASS_BY_KIND[kind])
            .where(table.c.depth == Depth.SOFT)
            .where(table.c.enrichment_error.is_not(None))
            .order_by(table.c.updated_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        pending: list[tuple[Entity, ExternalRef]] = []
        for entity in self.session.execute(stmt).scalars():
            refs = self.external_ids(kind, entity.id)
            if refs:
                pending.append((entity, refs[0]))
        return pending

    def count(self, kind: EntityKind) -> int:
        table = TABLE_BY_KIND[kind]
        return self.session.execute(select(func.count()).select_from(table)).scalar_one()


class SqlAlchemyNominationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def insert_if_absent(self, nomination: Nomination) -> bool:
        stmt = (
            _insert(self.session, nomination_table)
            .values(**_row(nomination_table, nomination))
            .on_conflict_do_nothing(index_elements=["batch_key", "category", "relation_key"])
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def get_by_key(self, batch_key: str, category: str, relation_key: str) -> Nomination | None:
        table = nomination_table
        stmt = (
            select(Nomination)
            .where(table.c.batch_key == batch_key)
            .where(table.c.category == category)
            .where(table.c.relation_key == relation_key)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def for_batch(self, batch_key: str) -> list[Nomination]:
        table = nomination_table
        stmt = (
            select(Nomination)
            .where(table.c.batch_key == batch_key)
            .order_by(table.c.category, table.c.relation_key)
        )
        return list(self.session.execute(stmt).scalars())

    def count(self, batch_key: str | None = None) -> int:
        stmt = select(func.count()).select_from(nomination_table)
        if batch_key is not None:
            stmt = stmt.where(nomination_table.c.batch_key == batch_key)
        return self.session.execute(stmt).scalar_one()


class SqlAlchemyManifestRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create_if_absent(self, manifest: ImportManifest) -> ImportManifest:
        stmt = (
            _insert(self.session, import_manifest_table)
            .values(**_row(import_manifest_table, manifest))
            .on_conflict_do_nothing(index_elements=["batch_key"])
        )
        self.session.execute(stmt)
        stored = self.get_by_batch_key(manifest.batch_key)
        if stored is None:
            raise RuntimeError(f"Manifest {manifest.batch_key} missing after insert")
        return stored

    def get(self, manifest_id: UUID) -> ImportManifest | None:
        return self.session.get(ImportManifest, manifest_id, populate_existing=True)

    def get_by_batch_key(self, batch_key: str) -> ImportManifest | None:
        stmt = (
            select(ImportManifest)
            .where(import_manifest_table.c.batch_key == batch_key)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def add_entities(self, entries: Iterable[ManifestEntity]) -> int:
        return self._insert_many(
            manifest_entity_table, entries, ("manifest_id", "kind", "namespace", "value")
        )

    def add_relations(self, relations: Iterable[ManifestRelation]) -> int:
        return self._insert_many(
            manifest_relation_table, relations, ("manifest_id", "category", "relation_key")
        )

    def _insert_many(self, table: Table, instances: Iterable[object], keys: Sequence[str]) -> int:
        inserted = 0
        for chunk in batched(instances, _INSERT_CHUNK):
            stmt = (
                _insert(self.session, table)
                .values([_row(table, instance) for instance in chunk])
                .on_conflict_do_nothing(index_elements=list(keys))
            )
            inserted += _rowcount(self.session.execute(stmt))
        return inserted

    def get_entity(self, entry_id: UUID) -> ManifestEntity | None:
        return self.session.get(ManifestEntity, entry_id, populate_existing=True)

    def entities(
        self, manifest_id: UUID, *, statuses: Iterable[EntryStatus] | None = None
    ) -> list[ManifestEntity]:
        table = manifest_entity_table
        stmt = (
            select(ManifestEntity)
            .where(table.c.manifest_id == manifest_id)
            .order_by(table.c.namespace, table.c.value)
            .execution_options(populate_existing=True)
        )
        if statuses is not None:
            stmt = stmt.where(table.c.status.in_(list(statuses)))
        return list(self.session.execute(stmt).scalars())

    def relations(
        self, manifest_id: UUID, *, statuses: Iterable[RelationStatus] | None = None
    ) -> list[ManifestRelation]:
        table = manifest_relation_table
        stmt = (
            select(ManifestRelation)
            .where(table.c.manifest_id == manifest_id)
            .order_by(table.c.category, table.c.relation_key)
            .execution_options(populate_existing=True)
        )
        if statuses is not None:
            stmt = stmt.where(table.c.status.in_(list(statuses)))
        return list(self.session.execute(stmt).scalars())

    def record_attempt(self, entry_id: UUID, *, now: datetime) -> bool:
        table = manifest_entity_table
        stmt = (
            update(table)
            .where(table.c.id == entry_id)
            .where(table.c.status != EntryStatus.RESOLVED)
            .values(attempts=table.c.attempts + 1, updated_at=now)
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def entity_counts(self, manifest_id: UUID) -> Mapping[EntryStatus, int]:
        table = manifest_entity_table
        stmt = (
            select(table.c.status, func.count())
            .where(table.c.manifest_id == manifest_id)
            .group_by(table.c.status)
        )
        return {EntryStatus(status): count for status, count in self.session.execute(stmt)}

    def relation_counts(self, manifest_id: UUID) -> Mapping[RelationStatus, int]:
        table = manifest_relation_table
        stmt = (
            select(table.c.status, func.count())
            .where(table.c.manifest_id == manifest_id)
            .group_by(table.c.status)
        )
        return {RelationStatus(status): count for status, count in self.session.execute(stmt)}

    def incomplete(self) -> list[ImportManifest]:
        table = import_manifest_table
        stmt = (
            select(ImportManifest)
            .where(table.c.status != ManifestStatus.COMPLETE)
            .where(table.c.abandoned.is_(False))
            .order_by(table.c.created_at, table.c.batch_key)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars())

    def list_all(self, *, include_archived: bool = False) -> list[ImportManifest]:
        table = import_manifest_table
        stmt = select(ImportManifest).order_by(table.c.batch_key)
        if not include_archived:
            stmt = stmt.where(table.c.archived_at.is_(None))
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyCursorRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, stream: str) -> ImportCursor | None:
        return self.session.get(ImportCursor, stream, populate_existing=True)

    def create_if_absent(self, cursor: ImportCursor) -> ImportCursor:
        stmt = (
            _insert(self.session, import_cursor_table)
            .values(**_row(import_cursor_table, cursor))
            .on_conflict_do_nothing(index_elements=["stream"])
        )
        self.session.execute(stmt)
        stored = self.get(cursor.stream)
        if stored is None:
            raise RuntimeError(f"Cursor {cursor.stream} missing after insert")
        return stored

    def advance(self, stream: str, position: int, *, complete: bool, now: datetime) -> bool:
        table = import_cursor_table
        stmt = (
            update(table)
            .where(table.c.stream == stream)
            .where(table.c.last_completed_position == position - 1)
            .where(table.c.status != CursorStatus.COMPLETE)
            .values(
                last_completed_position=position,
                current_position=position + 1,
                status=CursorStatus.COMPLETE if complete else CursorStatus.IN_PROGRESS,
                error=None,
                updated_at=now,
                completed_at=now if complete else None,
            )
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def incomplete(self) -> list[ImportCursor]:
        table = import_cursor_table
        stmt = (
            select(ImportCursor)
            .where(table.c.status != CursorStatus.COMPLETE)
            .order_by(table.c.stream)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars())

    def list_all(self) -> list[ImportCursor]:
        stmt = select(ImportCursor).order_by(import_cursor_table.c.stream)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyAdmissionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, record: AdmissionRecord) -> None:
        self.session.add(record)

    def recent(
        self, *, tier: AdmissionTier | None = None, limit: int | None = None
    ) -> list[AdmissionRecord]:
        table = admission_decision_table
        stmt = select(AdmissionRecord).order_by(table.c.decided_at.desc(), table.c.id.desc())
        if tier is not None:
            stmt = stmt.where(table.c.tier == tier)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())

    def count(self, *, tier: AdmissionTier | None = None) -> int:
        stmt = select(func.count()).select_from(admission_decision_table)
        if tier is not None:
            stmt = stmt.where(admission_decision_table.c.tier == tier)
        return self.session.execute(stmt).scalar_one()

"""SQLAlchemy mapping metadata for the import domain model."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING, Final

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers

from reelhouse.domain.model import (
    AdmissionRecord,
    AdmissionTier,
    CursorStatus,
    Depth,
    Entity,
    EntityKind,
    EntryStatus,
    ExternalID,
    ExternalNamespace,
    ImportCursor,
    ImportManifest,
    ManifestEntity,
    ManifestRelation,
    ManifestStatus,
    Movie,
    Nomination,
    NominationRole,
    Person,
    RelationStatus,
    StreamKind,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]
ENUM_LENGTH: Final[int] = 32


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


def enum_column_type(enum_cls: type[StrEnum]) -> Enum:
    """Store enums by value (``"tmdb:movie"``), not by member name."""

    return Enum(enum_cls, native_enum=False, values_callable=_values, length=ENUM_LENGTH)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Entities --------------------------------------------------------------------

movie_table = Table(
    "movie",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("title", String, nullable=False),
    Column("release_date", Date, nullable=True),
    Column("depth", enum_column_type(Depth), nullable=False),
    Column("popularity", Float, nullable=True),
    Column("raw_payload", JSON, nullable=False, default=dict),
    Column("enrichment_error", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
)

person_table = Table(
    "person",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("known_for_department", String, nullable=True),
    Column("depth", enum_column_type(Depth), nullable=False),
    Column("popularity", Float, nullable=True),
    Column("raw_payload", JSON, nullable=False, default=dict),
    Column("enrichment_error", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
)

# The claim table: one row per (kind, namespace, value), bound to exactly one entity.
external_id_table = Table(
    "external_id",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", enum_column_type(EntityKind), nullable=False),
    Column("namespace", enum_column_type(ExternalNamespace), nullable=False),
    Column("value", String, nullable=False),
    Column("entity_id", UUIDColumnType, nullable=False),
    Column("created_at", UTCDateTime, nullable=True),
    UniqueConstraint("kind", "namespace", "value", name="uq_external_id_kind_namespace_value"),
    Index("ix_external_id_entity_id", "entity_id"),
)

nomination_table = Table(
    "nomination",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("batch_key", String, nullable=False),
    Column("category", String, nullable=False),
    Column("relation_key", String, nullable=False),
    Column("role", enum_column_type(NominationRole), nullable=False),
    Column("movie_id", UUIDColumnType, ForeignKey("movie.id"), nullable=False),
    Column("person_id", UUIDColumnType, ForeignKey("person.id"), nullable=True),
    Column("won", Boolean, nullable=False, default=False),
    Column("details", JSON, nullable=False, default=dict),
    Column("created_at", UTCDateTime, nullable=True),
    UniqueConstraint(
        "batch_key", "category", "relation_key", name="uq_nomination_batch_category_relation"
    ),
)

# Import state ----------------------------------------------------------------

import_manifest_table = Table(
    "import_manifest",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("batch_key", String, nullable=False, unique=True),
    Column("source", String, nullable=False),
    Column("params", JSON, nullable=False, default=dict),
    Column("status", enum_column_type(ManifestStatus), nullable=False),
    Column("error", Text, nullable=True),
    Column("abandoned", Boolean, nullable=False, default=False),
    Column("created_at", UTCDateTime, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
    Column("collected_at", UTCDateTime, nullable=True),
    Column("completed_at", UTCDateTime, nullable=True),
    Column("archived_at", UTCDateTime, nullable=True),
)

manifest_entity_table = Table(
    "manifest_entity",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "manifest_id",
        UUIDColumnType,
        ForeignKey("import_manifest.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("kind", enum_column_type(EntityKind), nullable=False),
    Column("namespace", enum_column_type(ExternalNamespace), nullable=False),
    Column("value", String, nullable=False),
    Column("hints", JSON, nullable=False, default=dict),
    Column("status", enum_column_type(EntryStatus), nullable=False),
    Column("entity_id", UUIDColumnType, nullable=True),
    Column("attempts", Integer, nullable=False, default=0),
    Column("error", Text, nullable=True),
    Column("match_confidence", Float, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
    UniqueConstraint(
        "manifest_id", "kind", "namespace", "value", name="uq_manifest_entity_reference"
    ),
    Index("ix_manifest_entity_manifest_status", "manifest_id", "status"),
)

manifest_relation_table = Table(
    "manifest_relation",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "manifest_id",
        UUIDColumnType,
        ForeignKey("import_manifest.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("category", String, nullable=False),
    Column("role", enum_column_type(NominationRole), nullable=False),
    Column("relation_key", String, nullable=False),
    Column("movie_ref", String, nullable=True),
    Column("person_ref", String, nullable=True),
    Column("won", Boolean, nullable=False, default=False),
    Column("details", JSON, nullable=False, default=dict),
    Column("status", enum_column_type(RelationStatus), nullable=False),
    Column("nomination_id", UUIDColumnType, nullable=True),
    Column("error", Text, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
    UniqueConstraint(
        "manifest_id", "category", "relation_key", name="uq_manifest_relation_key"
    ),
    Index("ix_manifest_relation_manifest_status", "manifest_id", "status"),
)

import_cursor_table = Table(
    "import_cursor",
    mapper_registry.metadata,
    Column("stream", String, primary_key=True),
    Column("kind", enum_column_type(StreamKind), nullable=False),
    Column("start_position", Integer, nullable=False),
    Column("end_position", Integer, nullable=True),
    Column("current_position", Integer, nullable=False),
    Column("last_completed_position", Integer, nullable=False),
    Column("status", enum_column_type(CursorStatus), nullable=False),
    Column("params", JSON, nullable=False, default=dict),
    Column("error", Text, nullable=True),
    Column("started_at", UTCDateTime, nullable=True),
    Column("updated_at", UTCDateTime, nullable=True),
    Column("completed_at", UTCDateTime, nullable=True),
)

admission_decision_table = Table(
    "admission_decision",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", enum_column_type(EntityKind), nullable=False),
    Column("namespace", enum_column_type(ExternalNamespace), nullable=False),
    Column("value", String, nullable=False),
    Column("tier", enum_column_type(AdmissionTier), nullable=False),
    Column("criteria_met", JSON, nullable=False, default=list),
    Column("criteria_failed", JSON, nullable=False, default=list),
    Column("signals", JSON, nullable=False, default=dict),
    Column("source", String, nullable=True),
    Column("decided_at", UTCDateTime, nullable=True),
    Index("ix_admission_decision_reference", "namespace", "value"),
)

TABLE_BY_KIND: Final[dict[EntityKind, Table]] = {
    EntityKind.MOVIE: movie_table,
    EntityKind.PERSON: person_table,
}

CLASS_BY_KIND: Final[dict[EntityKind, type[Entity]]] = {
    EntityKind.MOVIE: Movie,
    EntityKind.PERSON: Person,
}


@cache
def start_mappers() -> orm.registry:
    """Map domain dataclasses onto the tables above (idempotent)."""

    mapper_registry.map_imperatively(Movie, movie_table)
    mapper_registry.map_imperatively(Person, person_table)
    mapper_registry.map_imperatively(ExternalID, external_id_table)
    mapper_registry.map_imperatively(Nomination, nomination_table)
    mapper_registry.map_imperatively(ImportManifest, import_manifest_table)
    mapper_registry.map_imperatively(ManifestEntity, manifest_entity_table)
    mapper_registry.map_imperatively(ManifestRelation, manifest_relation_table)
    mapper_registry.map_imperatively(ImportCursor, import_cursor_table)
    mapper_registry.map_imperatively(AdmissionRecord, admission_decision_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)

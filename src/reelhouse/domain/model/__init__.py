"""Domain model for catalog imports."""

from __future__ import annotations

from .audit import AdmissionRecord
from .catalog import CatalogItem, CatalogPage
from .cursor import ImportCursor, new_cursor
from .entity import ENTITY_CLASSES, Entity, Movie, Person
from .enums import (
    AdmissionTier,
    CategoryType,
    CursorStatus,
    Depth,
    EntityKind,
    EntryStatus,
    ExternalNamespace,
    ManifestStatus,
    NominationRole,
    Provider,
    RelationStatus,
    StreamKind,
)
from .external_ids import ExternalID, ExternalRef, kind_for, ordered_refs, provider_for
from .manifest import ImportManifest, ManifestEntity, ManifestRelation
from .nomination import Nomination, relation_key

__all__ = [
    "ENTITY_CLASSES",
    "AdmissionRecord",
    "AdmissionTier",
    "CatalogItem",
    "CatalogPage",
    "CategoryType",
    "CursorStatus",
    "Depth",
    "Entity",
    "EntityKind",
    "EntryStatus",
    "ExternalID",
    "ExternalNamespace",
    "ExternalRef",
    "ImportCursor",
    "ImportManifest",
    "ManifestEntity",
    "ManifestRelation",
    "ManifestStatus",
    "Movie",
    "Nomination",
    "NominationRole",
    "Person",
    "Provider",
    "RelationStatus",
    "StreamKind",
    "kind_for",
    "new_cursor",
    "ordered_refs",
    "provider_for",
    "relation_key",
]

"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Provider(StrEnum):
    TMDB = "tmdb"
    IMDB = "imdb"


class EntityKind(StrEnum):
    MOVIE = "movie"
    PERSON = "person"


class ExternalNamespace(StrEnum):
    TMDB_MOVIE = "tmdb:movie"
    TMDB_PERSON = "tmdb:person"
    IMDB_TITLE = "imdb:title"
    IMDB_NAME = "imdb:name"

    # Not an identifier: a normalized "title|year" search key for fuzzy matching.
    TITLE_QUERY = "query:title"


class Depth(StrEnum):
    FULL = "full"
    SOFT = "soft"


class AdmissionTier(StrEnum):
    FULL = "full"
    SOFT = "soft"
    REJECT = "reject"


class EntryStatus(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class RelationStatus(StrEnum):
    PENDING = "pending"
    CREATED = "created"
    FAILED = "failed"


class ManifestStatus(StrEnum):
    COLLECTING = "collecting"
    RESOLVING = "resolving"
    MATERIALIZING = "materializing"
    COMPLETE = "complete"
    FAILED = "failed"


class CursorStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    STALLED = "stalled"


class StreamKind(StrEnum):
    PAGES = "pages"
    YEARS = "years"


class CategoryType(StrEnum):
    PERSON = "person"
    FILM = "film"
    TECHNICAL = "technical"
    SPECIAL = "special"


class NominationRole(StrEnum):
    FILM = "film"
    PERSON = "person"

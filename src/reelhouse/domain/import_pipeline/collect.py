"""Phase A: turn a ceremony record into manifest entries and relations.

Nothing outside the manifest is written here. Entity entries are deduplicated
by external reference; relation entries point at them by the same reference
string, so later phases never need the source payload again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.ceremony import (
    ceremony_batch_key,
    ceremony_number,
    prize_name,
    tracks_people,
)
from reelhouse.domain.errors import BatchFailedError, MalformedPayloadError, ManifestNotFoundError
from reelhouse.domain.matching import normalize_title, title_query
from reelhouse.domain.model import (
    ExternalNamespace,
    ExternalRef,
    ImportManifest,
    ManifestEntity,
    ManifestRelation,
    ManifestStatus,
    NominationRole,
    RelationStatus,
    relation_key,
)

if TYPE_CHECKING:
    from uuid import UUID

    from reelhouse.domain.ceremony import (
        CeremonyRecord,
        FilmReference,
        NomineeRecord,
        PersonReference,
    )
    from reelhouse.domain.ports import CeremonySource, UnitOfWorkFactory

log = getLogger(__name__)

CEREMONY_SOURCE = "ceremony"


@dataclass(frozen=True, slots=True)
class CollectedBatch:
    entities: tuple[ManifestEntity, ...]
    relations: tuple[ManifestRelation, ...]

    @property
    def unidentified(self) -> int:
        return sum(1 for relation in self.relations if relation.status is RelationStatus.FAILED)


@dataclass(frozen=True, slots=True)
class CollectionResult:
    manifest_id: UUID
    batch_key: str
    entities: int = 0
    relations: int = 0
    unidentified: int = 0
    skipped: bool = False


class _BatchBuilder:
    def __init__(self, record: CeremonyRecord, manifest_id: UUID, *, fuzzy_matching: bool) -> None:
        self._record = record
        self._manifest_id = manifest_id
        self._fuzzy_matching = fuzzy_matching
        self._entities: dict[str, ManifestEntity] = {}
        self._relations: dict[tuple[str, str], ManifestRelation] = {}

    def build(self) -> CollectedBatch:
        for nominee in self._record.nominees:
            self._add_nominee(nominee)
        return CollectedBatch(
            entities=tuple(self._entities.values()),
            relations=tuple(self._relations.values()),
        )

    def _add_nominee(self, nominee: NomineeRecord) -> None:
        film = nominee.film
        movie_ref = self._film_ref(film)
        details = self._details(nominee)

        if tracks_people(nominee.category) and nominee.people:
            for person in nominee.people:
                self._add_person_relation(nominee, movie_ref, film, person, details)
            return

        reason = None if movie_ref is not None else _missing_film_reason(film)
        key = relation_key(NominationRole.FILM, _ref_key(movie_ref, film))
        self._add_relation(nominee, NominationRole.FILM, key, movie_ref, None, details, reason)

    def _add_person_relation(
        self,
        nominee: NomineeRecord,
        movie_ref: ExternalRef | None,
        film: FilmReference | None,
        person: PersonReference,
        details: dict[str, object],
    ) -> None:
        person_ref = person.primary_ref
        if person_ref is not None:
            self._add_entity(person_ref, {"name": person.name})

        reason = None
        if movie_ref is None:
            reason = _missing_film_reason(film)
        elif person_ref is None:
            reason = f"no external id for person {person.name or '<unnamed>'!r}"

        key = relation_key(
            NominationRole.PERSON,
            _ref_key(movie_ref, film),
            str(person_ref) if person_ref else f"unidentified:{(person.name or '').lower()}",
        )
        person_details = {**details, "person": person.name} if person.name else details
        self._add_relation(
            nominee, NominationRole.PERSON, key, movie_ref, person_ref, person_details, reason
        )

    def _add_relation(
        self,
        nominee: NomineeRecord,
        role: NominationRole,
        key: str,
        movie_ref: ExternalRef | None,
        person_ref: ExternalRef | None,
        details: dict[str, object],
        reason: str | None,
    ) -> None:
        existing = self._relations.get((nominee.category, key))
        if existing is not None:
            # the same film listed twice in a category collapses to one nomination
            existing.won = existing.won or nominee.won
            return
        self._relations[(nominee.category, key)] = ManifestRelation(
            manifest_id=self._manifest_id,
            category=nominee.category,
            role=role,
            relation_key=key,
            movie_ref=str(movie_ref) if movie_ref else None,
            person_ref=str(person_ref) if person_ref else None,
            won=nominee.won,
            details=details,
            status=RelationStatus.FAILED if reason else RelationStatus.PENDING,
            error=reason,
        )

    def _film_ref(self, film: FilmReference | None) -> ExternalRef | None:
        if film is None:
            return None
        ref = film.primary_ref
        if ref is None and self._fuzzy_matching and film.title and normalize_title(film.title):
            ref = ExternalRef(ExternalNamespace.TITLE_QUERY, title_query(film.title, film.year))
        if ref is not None:
            self._add_entity(ref, {"name": film.title, "year": film.year})
        return ref

    def _add_entity(self, ref: ExternalRef, hints: dict[str, object]) -> None:
        key = str(ref)
        entry = self._entities.get(key)
        if entry is None:
            self._entities[key] = ManifestEntity(
                manifest_id=self._manifest_id,
                kind=ref.kind,
                namespace=ref.namespace,
                value=ref.value,
                hints={name: value for name, value in hints.items() if value is not None},
            )
            return
        for name, value in hints.items():
            if value is not None:
                entry.hints.setdefault(name, value)

    def _details(self, nominee: NomineeRecord) -> dict[str, object]:
        organization, year = self._record.organization, self._record.year
        details: dict[str, object] = {"year": year}
        if nominee.nominee_name:
            details["nominee"] = nominee.nominee_name
        titles = [film.title for film in nominee.films if film.title]
        if titles:
            details["films"] = titles
        if not tracks_people(nominee.category):
            names = [person.name for person in nominee.people if person.name]
            if names:
                details["people"] = names
        number = ceremony_number(organization, year)
        if number is not None:
            details["ceremony_number"] = number
        prize = prize_name(organization, nominee.category)
        if prize is not None:
            details["prize"] = prize
        details.update(nominee.details)
        return details


def _ref_key(ref: ExternalRef | None, film: FilmReference | None) -> str:
    if ref is not None:
        return str(ref)
    title = film.title if film is not None and film.title else ""
    return f"unidentified:{normalize_title(title)}"


def _missing_film_reason(film: FilmReference | None) -> str:
    if film is None or not film.title:
        return "nomination names no film"
    return f"no external id for film {film.title!r}"


def collect(
    record: CeremonyRecord, manifest_id: UUID, *, fuzzy_matching: bool = False
) -> CollectedBatch:
    """Build the manifest contents for ``record``. Pure; nothing is persisted."""

    return _BatchBuilder(record, manifest_id, fuzzy_matching=fuzzy_matching).build()


async def collect_ceremony(
    organization: str,
    year: int,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CeremonySource,
    fuzzy_matching: bool = False,
) -> CollectionResult:
    """Create (or reuse) the manifest for one ceremony and collect it once.

    A manifest that was already collected is left untouched. A malformed payload
    marks the manifest failed and raises ``BatchFailedError``; a source outage
    propagates unchanged and leaves the manifest collecting for a retry.
    """

    batch_key = ceremony_batch_key(organization, year)
    now = datetime.now(UTC)
    with uow_factory() as uow:
        manifest = uow.repositories.manifests.create_if_absent(
            ImportManifest(
                batch_key=batch_key,
                source=CEREMONY_SOURCE,
                params={"organization": organization, "year": year},
                created_at=now,
                updated_at=now,
            )
        )
        uow.commit()

    manifest_id = manifest.id
    if manifest.is_collected or manifest.abandoned:
        log.info("Manifest %s already collected; skipping phase A", batch_key)
        return CollectionResult(manifest_id=manifest_id, batch_key=batch_key, skipped=True)

    try:
        record = await source.fetch(organization, year)
    except MalformedPayloadError as exc:
        _fail_manifest(manifest_id, str(exc), uow_factory=uow_factory)
        raise BatchFailedError(f"{batch_key}: {exc}", batch_key=batch_key) from exc

    batch = collect(record, manifest_id, fuzzy_matching=fuzzy_matching)
    now = datetime.now(UTC)
    with uow_factory() as uow:
        manifests = uow.repositories.manifests
        current = manifests.get(manifest_id)
        if current is None:
            raise ManifestNotFoundError(f"Manifest {manifest_id} disappeared during collection")
        if current.is_collected:
            return CollectionResult(manifest_id=manifest_id, batch_key=batch_key, skipped=True)
        manifests.add_entities(batch.entities)
        manifests.add_relations(batch.relations)
        current.collected_at = now
        current.updated_at = now
        current.error = None
        if batch.entities or batch.relations:
            current.status = ManifestStatus.RESOLVING
        else:
            current.status = ManifestStatus.COMPLETE
            current.completed_at = now
        uow.commit()

    log.info(
        "Collected %s: %d entities, %d relations (%d without usable ids)",
        batch_key,
        len(batch.entities),
        len(batch.relations),
        batch.unidentified,
    )
    return CollectionResult(
        manifest_id=manifest_id,
        batch_key=batch_key,
        entities=len(batch.entities),
        relations=len(batch.relations),
        unidentified=batch.unidentified,
    )


def _fail_manifest(manifest_id: UUID, error: str, *, uow_factory: UnitOfWorkFactory) -> None:
    now = datetime.now(UTC)
    with uow_factory() as uow:
        manifest = uow.repositories.manifests.get(manifest_id)
        if manifest is None:
            return
        manifest.status = ManifestStatus.FAILED
        manifest.error = error
        manifest.updated_at = now
        uow.commit()
    log.error("Manifest %s failed during collection: %s", manifest_id, error)


from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from reelhouse.domain.model import (
    AdmissionRecord,
    AdmissionTier,
    CursorStatus,
    Depth,
    EntityKind,
    EntryStatus,
    ExternalNamespace,
    ExternalRef,
    ImportManifest,
    ManifestEntity,
    ManifestRelation,
    Movie,
    Nomination,
    NominationRole,
    new_cursor,
    relation_key,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from reelhouse.adapters.sqlalchemy.unit_of_work import SqlAlchemyImportUnitOfWork

TMDB_REF = ExternalRef(ExternalNamespace.TMDB_MOVIE, "278")
IMDB_REF = ExternalRef(ExternalNamespace.IMDB_TITLE, "tt0111161")


def test_claim_returns_first_owner(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    first = Movie(title="The Shawshank Redemption")
    second = Movie(title="Shawshank")

    with sqlite_unit_of_work() as uow:
        owners = uow.repositories.entities.claim(EntityKind.MOVIE, (TMDB_REF,), first.id)
        uow.commit()
    assert owners == {TMDB_REF: first.id}

    with sqlite_unit_of_work() as uow:
        owners = uow.repositories.entities.claim(
            EntityKind.MOVIE, (TMDB_REF, IMDB_REF), second.id
        )
        uow.commit()

    assert owners == {TMDB_REF: first.id, IMDB_REF: second.id}


def test_insert_if_absent_and_upgrade(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    soft = Movie(title="Placeholder", depth=Depth.SOFT)

    with sqlite_unit_of_work() as uow:
        entities = uow.repositories.entities
        assert entities.insert_if_absent(soft)
        assert not entities.insert_if_absent(soft)
        uow.commit()

    full = Movie(title="The Shawshank Redemption", popularity=80.0)
    with sqlite_unit_of_work() as uow:
        entities = uow.repositories.entities
        assert entities.upgrade_to_full(full, soft.id)
        assert not entities.upgrade_to_full(full, soft.id)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.entities.get(EntityKind.MOVIE, soft.id)
        assert stored is not None
        assert stored.depth is Depth.FULL
        assert stored.label == "The Shawshank Redemption"
        assert uow.repositories.entities.count(EntityKind.MOVIE) == 1


def test_get_by_external_id_and_external_ids(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    movie = Movie(title="The Shawshank Redemption")

    with sqlite_unit_of_work() as uow:
        entities = uow.repositories.entities
        entities.claim(EntityKind.MOVIE, (TMDB_REF, IMDB_REF), movie.id)
        entities.insert_if_absent(movie)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        entities = uow.repositories.entities
        found = entities.get_by_external_id(IMDB_REF)
        assert found is not None
        assert found.id == movie.id
        assert entities.external_ids(EntityKind.MOVIE, movie.id) == (TMDB_REF, IMDB_REF)
        assert entities.get_by_external_id(ExternalRef(ExternalNamespace.TMDB_MOVIE, "1")) is None


def test_pending_enrichment_lists_failed_placeholders(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    placeholder = Movie(title="Pending", updated_at=datetime.now(UTC))
    healthy = Movie(title="Healthy", updated_at=datetime.now(UTC))

    with sqlite_unit_of_work() as uow:
        entities = uow.repositories.entities
        entities.claim(EntityKind.MOVIE, (TMDB_REF,), placeholder.id)
        entities.insert_if_absent(placeholder)
        entities.insert_if_absent(healthy)
        entities.record_enrichment_error(EntityKind.MOVIE, placeholder.id, "503")
        uow.commit()

    with sqlite_unit_of_work() as uow:
        pending = uow.repositories.entities.pending_enrichment(EntityKind.MOVIE)

    assert [(entity.id, ref) for entity, ref in pending] == [(placeholder.id, TMDB_REF)]


def test_manifest_create_if_absent_is_idempotent(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    with sqlite_unit_of_work() as uow:
        first = uow.repositories.manifests.create_if_absent(
            ImportManifest(batch_key="oscars:1995", source="ceremony")
        )
        uow.commit()

    with sqlite_unit_of_work() as uow:
        second = uow.repositories.manifests.create_if_absent(
            ImportManifest(batch_key="oscars:1995", source="ceremony")
        )
        uow.commit()

    assert second.id == first.id
    with sqlite_unit_of_work() as uow:
        assert len(uow.repositories.manifests.list_all()) == 1
        assert [m.id for m in uow.repositories.manifests.incomplete()] == [first.id]


def test_manifest_entries_and_relations_are_unique(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    with sqlite_unit_of_work() as uow:
        manifest = uow.repositories.manifests.create_if_absent(
            ImportManifest(batch_key="oscars:1995", source="ceremony")
        )
        uow.commit()

    def entry() -> ManifestEntity:
        return ManifestEntity(
            manifest_id=manifest.id,
            kind=EntityKind.MOVIE,
            namespace=IMDB_REF.namespace,
            value=IMDB_REF.value,
            hints={"name": "The Shawshank Redemption"},
        )

    def relation() -> ManifestRelation:
        return ManifestRelation(
            manifest_id=manifest.id,
            category="Best Picture",
            role=NominationRole.FILM,
            relation_key=relation_key(NominationRole.FILM, str(IMDB_REF)),
            movie_ref=str(IMDB_REF),
        )

    with sqlite_unit_of_work() as uow:
        manifests = uow.repositories.manifests
        assert manifests.add_entities([entry(), entry()]) == 1
        assert manifests.add_relations([relation()]) == 1
        uow.commit()

    with sqlite_unit_of_work() as uow:
        manifests = uow.repositories.manifests
        assert manifests.add_entities([entry()]) == 0
        assert manifests.add_relations([relation()]) == 0
        assert manifests.entity_counts(manifest.id) == {EntryStatus.PENDING: 1}
        [stored] = manifests.entities(manifest.id, statuses=[EntryStatus.PENDING])
        assert stored.ref == IMDB_REF
        assert stored.display_name == "The Shawshank Redemption"
        assert manifests.entities(manifest.id, statuses=[EntryStatus.RESOLVED]) == []


def test_record_attempt_increments_in_sql(
    file_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    now = datetime(2024, 3, 1, tzinfo=UTC)
    with file_unit_of_work() as uow:
        manifest = uow.repositories.manifests.create_if_absent(
            ImportManifest(batch_key="oscars:1995", source="ceremony")
        )
        entry = ManifestEntity(
            manifest_id=manifest.id,
            kind=EntityKind.MOVIE,
            namespace=IMDB_REF.namespace,
            value=IMDB_REF.value,
        )
        uow.repositories.manifests.add_entities([entry])
        uow.commit()

    # both units of work loaded the entry at zero attempts; neither increment is lost
    with file_unit_of_work() as first:
        stale = first.repositories.manifests.get_entity(entry.id)
        assert stale is not None
        assert stale.attempts == 0
        with file_unit_of_work() as second:
            assert second.repositories.manifests.record_attempt(entry.id, now=now)
            second.commit()
        assert first.repositories.manifests.record_attempt(entry.id, now=now)
        first.commit()

    with file_unit_of_work() as uow:
        stored = uow.repositories.manifests.get_entity(entry.id)
        assert stored is not None
        assert stored.attempts == 2
        stored.status = EntryStatus.RESOLVED
        uow.commit()

    with file_unit_of_work() as uow:
        assert not uow.repositories.manifests.record_attempt(entry.id, now=now)
        stored = uow.repositories.manifests.get_entity(entry.id)
        assert stored is not None
        assert stored.attempts == 2


def test_cursor_advances_one_position_at_a_time(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    now = datetime.now(UTC)

    with sqlite_unit_of_work() as uow:
        cursors = uow.repositories.cursors
        cursors.create_if_absent(new_cursor("popular", start=1, end=3))
        uow.commit()

    with sqlite_unit_of_work() as uow:
        cursors = uow.repositories.cursors
        assert cursors.advance("popular", 1, complete=False, now=now)
        assert not cursors.advance("popular", 1, complete=False, now=now)
        assert not cursors.advance("popular", 3, complete=False, now=now)
        assert cursors.advance("popular", 2, complete=True, now=now)
        assert not cursors.advance("popular", 3, complete=False, now=now)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        cursor = uow.repositories.cursors.get("popular")
        assert cursor is not None
        assert cursor.last_completed_position == 2
        assert cursor.status is CursorStatus.COMPLETE
        assert cursor.completed_at is not None
        assert uow.repositories.cursors.incomplete() == []


def test_cursor_create_if_absent_keeps_existing_position(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    now = datetime.now(UTC)
    with sqlite_unit_of_work() as uow:
        uow.repositories.cursors.create_if_absent(new_cursor("popular"))
        uow.repositories.cursors.advance("popular", 1, complete=False, now=now)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        cursor = uow.repositories.cursors.create_if_absent(new_cursor("popular", start=5))
        uow.commit()

    assert cursor.start_position == 1
    assert cursor.next_position == 2


def test_nominations_are_unique_per_relation(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    movie = Movie(title="Forrest Gump")
    key = relation_key(NominationRole.FILM, str(IMDB_REF))

    def nomination() -> Nomination:
        return Nomination(
            batch_key="oscars:1995",
            category="Best Picture",
            relation_key=key,
            role=NominationRole.FILM,
            movie_id=movie.id,
            won=True,
        )

    with sqlite_unit_of_work() as uow:
        uow.repositories.entities.insert_if_absent(movie)
        assert uow.repositories.nominations.insert_if_absent(nomination())
        assert not uow.repositories.nominations.insert_if_absent(nomination())
        uow.commit()

    with sqlite_unit_of_work() as uow:
        nominations = uow.repositories.nominations
        assert nominations.count("oscars:1995") == 1
        stored = nominations.get_by_key("oscars:1995", "Best Picture", key)
        assert stored is not None
        assert stored.won
        assert [n.id for n in nominations.for_batch("oscars:1995")] == [stored.id]


def test_admission_records_are_queryable_by_tier(
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    with sqlite_unit_of_work() as uow:
        admissions = uow.repositories.admissions
        for value, tier in (("1", AdmissionTier.FULL), ("2", AdmissionTier.REJECT)):
            admissions.add(
                AdmissionRecord(
                    kind=EntityKind.MOVIE,
                    namespace=ExternalNamespace.TMDB_MOVIE,
                    value=value,
                    tier=tier,
                    criteria_met=["has_image"],
                    decided_at=datetime.now(UTC),
                )
            )
        uow.commit()

    with sqlite_unit_of_work() as uow:
        admissions = uow.repositories.admissions
        assert admissions.count() == 2
        assert admissions.count(tier=AdmissionTier.REJECT) == 1
        [rejected] = admissions.recent(tier=AdmissionTier.REJECT)
        assert rejected.value == "2"

from __future__ import annotations

import pytest

from reelhouse.domain.discovery import work_priority
from reelhouse.domain.model import (
    CatalogItem,
    EntityKind,
    ExternalNamespace,
    ExternalRef,
    new_cursor,
    ordered_refs,
    relation_key,
)
from reelhouse.domain.model.enums import NominationRole
from reelhouse.domain.policy import JobRetryPolicy
from tests.helpers.catalog import make_movie_item


def test_external_ref_parse_inverts_str() -> None:
    ref = ExternalRef(ExternalNamespace.IMDB_TITLE, "tt0111161")

    assert str(ref) == "imdb:title:tt0111161"
    assert ExternalRef.parse(str(ref)) == ref
    assert ref.kind is EntityKind.MOVIE


@pytest.mark.parametrize("text", ["tt0111161", "spotify:track:abc", "imdb:title:"])
def test_external_ref_parse_rejects_garbage(text: str) -> None:
    with pytest.raises(ValueError, match="external"):
        ExternalRef.parse(text)


def test_ordered_refs_prefers_catalog_ids_and_filters_kind() -> None:
    imdb = ExternalRef(ExternalNamespace.IMDB_TITLE, "tt1")
    tmdb = ExternalRef(ExternalNamespace.TMDB_MOVIE, "1")
    person = ExternalRef(ExternalNamespace.TMDB_PERSON, "2")

    assert ordered_refs([imdb, person, tmdb, imdb], kind=EntityKind.MOVIE) == (tmdb, imdb)


def test_catalog_item_payload_survives_a_queue_hop() -> None:
    item = make_movie_item(603, "The Matrix", imdb_id="tt0133093")

    restored = CatalogItem.from_payload(item.to_payload())

    assert restored == item
    assert restored.external_ids == item.external_ids


def test_new_cursor_starts_one_below_start() -> None:
    cursor = new_cursor("years", start=1990, end=1995)

    assert cursor.last_completed_position == 1989
    assert cursor.next_position == 1990
    assert not cursor.is_past_end(1995)
    assert cursor.is_past_end(1996)
    with pytest.raises(ValueError, match="precedes"):
        new_cursor("bad", start=5, end=4)


def test_relation_key_encodes_role_and_refs() -> None:
    assert relation_key(NominationRole.FILM, "tmdb:movie:1") == "film|tmdb:movie:1|"
    assert (
        relation_key(NominationRole.PERSON, "tmdb:movie:1", "tmdb:person:2")
        == "person|tmdb:movie:1|tmdb:person:2"
    )


def test_retry_policy_counts_retries_after_the_first_attempt() -> None:
    assert JobRetryPolicy(max_attempts=5).max_retries == 4
    assert JobRetryPolicy(max_attempts=1).max_retries == 0


@pytest.mark.parametrize(
    ("popularity", "priority"), [(150.0, 0), (60.0, 1), (25.0, 2), (5.0, 3), (None, 3)]
)
def test_work_priority_bands(popularity: float | None, priority: int) -> None:
    assert work_priority(popularity) == priority

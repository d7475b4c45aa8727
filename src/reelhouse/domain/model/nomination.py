"""Award nominations linking ceremonies, categories and entities."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reelhouse.domain.model.enums import NominationRole

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class Nomination:
    """One materialized relation.

    Unique per ``(batch_key, category, relation_key)``; ``relation_key`` encodes the
    role and the external references of every entity the nomination points at.
    """

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    batch_key: str
    category: str
    relation_key: str
    role: NominationRole
    movie_id: uuid.UUID
    person_id: uuid.UUID | None = None
    won: bool = False
    details: dict[str, object] = field(default_factory=dict)
    created_at: datetime | None = None


def relation_key(role: NominationRole, movie_ref: str, person_ref: str | None = None) -> str:
    return "|".join((str(role), movie_ref, person_ref or ""))

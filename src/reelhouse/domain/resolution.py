"""Entity resolution: create-or-fetch keyed on external identifiers.

``resolve_or_create`` never asks "does it exist?" before writing. Every
identifier is claimed with a single conflict-ignoring insert, and whoever owns
the claim afterwards is the entity. Concurrent resolvers for the same
identifier therefore read back the same row; the losing candidate is dropped
before it is ever written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.admission import DEFAULT_THRESHOLDS, evaluate, log_decision, tier_depth
from reelhouse.domain.errors import SourceUnavailableError
from reelhouse.domain.model import (
    AdmissionTier,
    CatalogItem,
    Depth,
    Entity,
    EntityKind,
    ExternalRef,
    Movie,
    Person,
    ordered_refs,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.ports import CatalogSource, EntityRepository, UnitOfWorkFactory

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    entity: Entity
    created: bool
    upgraded: bool = False
    conflicts: tuple[ExternalRef, ...] = ()


def build_entity(
    kind: EntityKind,
    item: CatalogItem,
    depth: Depth,
    *,
    now: datetime,
    entity_id: UUID | None = None,
) -> Entity:
    entity: Entity
    if kind is EntityKind.MOVIE:
        entity = Movie(
            title=item.title,
            release_date=item.release_date,
            depth=depth,
            popularity=item.popularity,
            raw_payload=dict(item.raw_payload),
            created_at=now,
            updated_at=now,
        )
    else:
        entity = Person(
            name=item.title,
            known_for_department=item.department,
            depth=depth,
            popularity=item.popularity,
            raw_payload=dict(item.raw_payload),
            created_at=now,
            updated_at=now,
        )
    if entity_id is not None:
        entity.id = entity_id
    return entity


def resolve_or_create(
    entities: EntityRepository,
    kind: EntityKind,
    external_id: ExternalRef,
    raw_attributes: CatalogItem,
    admission_tier: AdmissionTier,
    *,
    now: datetime | None = None,
) -> Resolution:
    """Return the one entity of ``kind`` owning ``external_id``, creating it if needed.

    Must run inside a unit of work; the caller commits. Cross-references carried by
    ``raw_attributes`` are claimed in the same transaction, so an entity first seen
    through one identifier is found again through any of the others.
    """

    depth = tier_depth(admission_tier)
    if depth is None:
        raise ValueError(f"Rejected item {external_id} cannot be resolved")
    if external_id.kind is not kind:
        raise ValueError(f"{external_id} does not identify a {kind}")

    refs = tuple(
        ref
        for ref in ordered_refs((external_id, *raw_attributes.external_ids), kind=kind)
        if ref.is_identifier
    )
    if not refs:
        raise ValueError(f"No claimable identifier for {kind} {external_id}")

    timestamp = now or datetime.now(UTC)
    candidate = build_entity(kind, raw_attributes, depth, now=timestamp)
    owners = entities.claim(kind, refs, candidate.id)
    prior = [owners[ref] for ref in refs if owners[ref] != candidate.id]

    if not prior:
        entities.insert_if_absent(candidate)
        log.debug("Created %s %s as %s (%s)", kind, candidate.id, depth, external_id)
        return Resolution(entity=_load(entities, kind, candidate, candidate.id), created=True)

    winner = prior[0]
    conflicts = tuple(ref for ref in refs if owners[ref] not in (candidate.id, winner))
    if conflicts:
        log.warning(
            "%s %s: identifiers %s already belong to a different entity",
            kind,
            winner,
            ", ".join(str(ref) for ref in conflicts),
        )
    if len(prior) < len(refs):
        entities.rebind(kind, candidate.id, winner)

    upgraded = depth is Depth.FULL and entities.upgrade_to_full(candidate, winner)
    if upgraded:
        log.info("Upgraded %s %s to full (%s)", kind, winner, external_id)
    return Resolution(
        entity=_load(entities, kind, candidate, winner),
        created=False,
        upgraded=upgraded,
        conflicts=conflicts,
    )


def _load(
    entities: EntityRepository, kind: EntityKind, candidate: Entity, entity_id: UUID
) -> Entity:
    entity = entities.get(kind, entity_id)
    if entity is not None:
        return entity
    # A claim without its row (e.g. removed by an operator): recreate it under the claim.
    candidate.id = entity_id
    entities.insert_if_absent(candidate)
    restored = entities.get(kind, entity_id)
    if restored is None:
        raise LookupError(f"{kind} {entity_id} vanished during resolution")
    return restored


@dataclass(frozen=True, slots=True)
class ReferenceOutcome:
    resolution: Resolution | None
    detail_fetched: bool
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.resolution is not None


def placeholder_item(
    ref: ExternalRef, hints: Mapping[str, object], *, reason: str
) -> CatalogItem | None:
    """Minimal attributes for a soft record, built from what the batch already knows."""

    name = hints.get("name")
    if not ref.is_identifier or not isinstance(name, str) or not name.strip():
        return None
    return CatalogItem(
        kind=ref.kind,
        external_id=ref,
        title=name.strip(),
        raw_payload={"placeholder": True, "reason": reason, "hints": dict(hints)},
    )


async def resolve_reference(
    ref: ExternalRef,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    fallback: CatalogItem | None = None,
    tier: AdmissionTier | None = None,
    source_label: str | None = None,
) -> ReferenceOutcome:
    """Fetch details for ``ref`` and resolve the entity they describe.

    When the source is unavailable and a ``fallback`` is given, a soft placeholder
    is stored and the error is kept on the entity for a later enrichment retry;
    without a fallback the ``SourceUnavailableError`` propagates.
    """

    kind = ref.kind
    try:
        detail = await source.fetch_detail(kind, ref)
    except SourceUnavailableError as exc:
        if fallback is None:
            raise
        log.warning("Detail fetch for %s failed (%s); storing soft placeholder", ref, exc)
        with uow_factory() as uow:
            entities = uow.repositories.entities
            resolution = resolve_or_create(entities, kind, ref, fallback, AdmissionTier.SOFT)
            if not resolution.entity.is_full:
                entities.record_enrichment_error(kind, resolution.entity.id, str(exc))
            uow.commit()
        return ReferenceOutcome(resolution=resolution, detail_fetched=False, error=str(exc))

    if detail is None:
        return ReferenceOutcome(
            resolution=None, detail_fetched=True, error=f"{ref} not found in catalog"
        )

    decision = evaluate(detail, thresholds)
    log_decision(decision)
    effective = tier or decision.tier
    if effective is AdmissionTier.REJECT:
        # referenced entities are kept; only discovery drops rejected items
        effective = AdmissionTier.SOFT

    now = datetime.now(UTC)
    with uow_factory() as uow:
        repositories = uow.repositories
        repositories.admissions.add(decision.to_record(source=source_label, decided_at=now))
        resolution = resolve_or_create(repositories.entities, kind, ref, detail, effective, now=now)
        if resolution.entity.enrichment_error is not None:
            repositories.entities.record_enrichment_error(kind, resolution.entity.id, None)
        uow.commit()
    return ReferenceOutcome(resolution=resolution, detail_fetched=True)

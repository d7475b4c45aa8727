"""Per-item work emitted by discovery: admit, then resolve."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.admission import DEFAULT_THRESHOLDS, evaluate, log_decision
from reelhouse.domain.model import AdmissionTier, CatalogItem
from reelhouse.domain.resolution import resolve_or_create, resolve_reference

if TYPE_CHECKING:
    from collections.abc import Mapping

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.model import ExternalRef
    from reelhouse.domain.ports import CatalogSource, UnitOfWorkFactory
    from reelhouse.domain.resolution import Resolution

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    ref: ExternalRef
    tier: AdmissionTier
    resolution: Resolution | None = None
    detail_fetched: bool = False


async def process_catalog_item(
    item: CatalogItem,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    source_label: str | None = None,
) -> ItemOutcome:
    """Classify a discovered item and store it at the depth it earned.

    Rejected items only leave an audit record. Soft items are stored from the
    discovery data alone; full items get a detail fetch first, falling back to a
    soft placeholder when the catalog is unavailable.
    """

    decision = evaluate(item, thresholds)
    log_decision(decision)
    record = decision.to_record(source=source_label, decided_at=datetime.now(UTC))

    if decision.tier is not AdmissionTier.FULL:
        with uow_factory() as uow:
            uow.repositories.admissions.add(record)
            resolution = None
            if decision.tier is AdmissionTier.SOFT:
                resolution = resolve_or_create(
                    uow.repositories.entities, item.kind, item.external_id, item, decision.tier
                )
            uow.commit()
        return ItemOutcome(ref=item.external_id, tier=decision.tier, resolution=resolution)

    with uow_factory() as uow:
        uow.repositories.admissions.add(record)
        uow.commit()

    outcome = await resolve_reference(
        item.external_id,
        uow_factory=uow_factory,
        source=source,
        thresholds=thresholds,
        fallback=item,
        tier=AdmissionTier.FULL,
        source_label=source_label,
    )
    resolution = outcome.resolution
    if resolution is None:
        # listed by discovery but gone from the detail endpoint; keep what we saw
        log.info("%s has no details; storing discovery data", item.external_id)
        with uow_factory() as uow:
            resolution = resolve_or_create(
                uow.repositories.entities, item.kind, item.external_id, item, AdmissionTier.FULL
            )
            uow.commit()
    return ItemOutcome(
        ref=item.external_id,
        tier=decision.tier,
        resolution=resolution,
        detail_fetched=outcome.detail_fetched,
    )


def item_from_payload(payload: Mapping[str, object]) -> tuple[CatalogItem, str | None]:
    """Inverse of the discovery work unit payload."""

    raw_item = payload.get("item")
    if not isinstance(raw_item, dict):
        raise ValueError("Work unit payload carries no catalog item")
    source = payload.get("source")
    return CatalogItem.from_payload(raw_item), source if isinstance(source, str) else None

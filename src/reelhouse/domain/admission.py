"""Quality admission filter.

``classify`` is a pure function of an item's signals and the configured
thresholds. It decides how much work an item is worth:

* ``full``: fetch complete details and enrich;
* ``soft``: keep a minimal record so relations can still point at it;
* ``reject``: drop the item, but keep the decision for audit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.domain.model import (
    AdmissionRecord,
    AdmissionTier,
    CatalogItem,
    Depth,
    EntityKind,
)

if TYPE_CHECKING:
    from datetime import datetime

log = getLogger(__name__)


class Criterion(StrEnum):
    HAS_TITLE = "has_title"
    HAS_IMAGE = "has_image"
    HAS_RELEASE_DATE = "has_release_date"
    HAS_POPULARITY = "has_popularity"
    HAS_VOTES = "has_votes"


@dataclass(frozen=True, slots=True)
class AdmissionThresholds:
    min_votes: int = 10
    min_popularity: float = 0.5
    full_min_criteria: int = 2
    soft_min_criteria: int = 1
    # popularity without a sample size is noise; never admit such items as full
    require_votes_for_full: bool = True
    person_min_popularity: float = 0.5
    key_departments: frozenset[str] = field(
        default_factory=lambda: frozenset({"Acting", "Directing", "Writing"})
    )


DEFAULT_THRESHOLDS = AdmissionThresholds()


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    item: CatalogItem
    tier: AdmissionTier
    met: tuple[Criterion, ...]
    failed: tuple[Criterion, ...]

    @property
    def depth(self) -> Depth | None:
        return tier_depth(self.tier)

    def to_record(self, *, source: str | None, decided_at: datetime) -> AdmissionRecord:
        return AdmissionRecord(
            kind=self.item.kind,
            namespace=self.item.external_id.namespace,
            value=self.item.external_id.value,
            tier=self.tier,
            criteria_met=[str(criterion) for criterion in self.met],
            criteria_failed=[str(criterion) for criterion in self.failed],
            signals=self.item.signals(),
            source=source,
            decided_at=decided_at,
        )


def tier_depth(tier: AdmissionTier) -> Depth | None:
    if tier is AdmissionTier.FULL:
        return Depth.FULL
    if tier is AdmissionTier.SOFT:
        return Depth.SOFT
    return None


def evaluate(
    item: CatalogItem, thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS
) -> AdmissionDecision:
    """Classify ``item`` and keep the criteria that led to the tier."""

    if item.kind is EntityKind.PERSON:
        return _evaluate_person(item, thresholds)
    return _evaluate_movie(item, thresholds)


def classify(
    item: CatalogItem, thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS
) -> AdmissionTier:
    return evaluate(item, thresholds).tier


def _evaluate_movie(item: CatalogItem, thresholds: AdmissionThresholds) -> AdmissionDecision:
    checks = {
        Criterion.HAS_IMAGE: item.image_ref is not None,
        Criterion.HAS_RELEASE_DATE: item.release_date is not None,
        Criterion.HAS_POPULARITY: (
            item.popularity is not None and item.popularity >= thresholds.min_popularity
        ),
        Criterion.HAS_VOTES: (
            item.vote_count is not None and item.vote_count >= thresholds.min_votes
        ),
    }
    met, failed = _split(checks)

    if not item.title.strip():
        return AdmissionDecision(item, AdmissionTier.REJECT, met, (Criterion.HAS_TITLE, *failed))

    # A zero count means the catalog has no votes on record.
    has_votes = item.vote_count is not None and item.vote_count > 0
    full_allowed = has_votes or not thresholds.require_votes_for_full
    if full_allowed and len(met) >= thresholds.full_min_criteria:
        tier = AdmissionTier.FULL
    elif len(met) >= thresholds.soft_min_criteria:
        tier = AdmissionTier.SOFT
    else:
        tier = AdmissionTier.REJECT
    return AdmissionDecision(item, tier, met, failed)


def _evaluate_person(item: CatalogItem, thresholds: AdmissionThresholds) -> AdmissionDecision:
    checks = {
        Criterion.HAS_IMAGE: item.image_ref is not None,
        Criterion.HAS_POPULARITY: (
            item.popularity is not None and item.popularity >= thresholds.person_min_popularity
        ),
    }
    met, failed = _split(checks)

    # People are referenced by nominations, so a weak profile is kept as soft.
    if item.department in thresholds.key_departments:
        tier = AdmissionTier.FULL if met else AdmissionTier.SOFT
    else:
        tier = AdmissionTier.FULL if not failed else AdmissionTier.SOFT
    return AdmissionDecision(item, tier, met, failed)


def _split(
    checks: dict[Criterion, bool],
) -> tuple[tuple[Criterion, ...], tuple[Criterion, ...]]:
    met = tuple(criterion for criterion, passed in checks.items() if passed)
    failed = tuple(criterion for criterion, passed in checks.items() if not passed)
    return met, failed


def log_decision(decision: AdmissionDecision) -> None:
    item = decision.item
    if decision.tier is AdmissionTier.REJECT:
        log.info(
            "Rejected %s %s (%s): failed %s",
            item.kind,
            item.external_id,
            item.title,
            ", ".join(decision.failed) or "-",
        )
        return
    log.debug(
        "Admitted %s %s (%s) as %s: met %s",
        item.kind,
        item.external_id,
        item.title,
        decision.tier,
        ", ".join(decision.met) or "-",
    )

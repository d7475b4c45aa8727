"""Shared context handed from phase to phase of a manifest import."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reelhouse.domain.admission import DEFAULT_THRESHOLDS
from reelhouse.domain.policy import ImportSettings

if TYPE_CHECKING:
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.ports import CatalogSource, CeremonySource, UnitOfWorkFactory

    from .collect import CollectionResult
    from .materialize import MaterializationSummary
    from .resolve import ResolutionReport


@dataclass(slots=True)
class ImportContext:
    """Collaborators plus the results each phase leaves for the next one."""

    uow_factory: UnitOfWorkFactory
    catalog: CatalogSource
    ceremonies: CeremonySource | None = None
    settings: ImportSettings = field(default_factory=ImportSettings)
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS
    organization: str | None = None
    year: int | None = None
    manifest_id: UUID | None = None
    include_failed: bool = False
    collection: CollectionResult | None = None
    resolution: ResolutionReport | None = None
    materialization: MaterializationSummary | None = None

    def require_manifest_id(self) -> UUID:
        if self.manifest_id is None:
            raise RuntimeError("Manifest id required; run the collect phase first")
        return self.manifest_id

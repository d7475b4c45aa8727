"""Entry points for running manifest imports."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reelhouse.domain.admission import DEFAULT_THRESHOLDS
from reelhouse.domain.policy import ImportSettings

from .context import ImportContext
from .orchestrator import CollectPhase, ImportPipeline, MaterializePhase, ResolvePhase

if TYPE_CHECKING:
    from uuid import UUID

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.ports import CatalogSource, CeremonySource, UnitOfWorkFactory


def default_ceremony_pipeline() -> ImportPipeline:
    return ImportPipeline(phases=(CollectPhase(), ResolvePhase(), MaterializePhase()))


def manifest_pipeline() -> ImportPipeline:
    """Phases B and C only, for manifests that are already collected."""

    return ImportPipeline(phases=(ResolvePhase(), MaterializePhase()))


async def run_ceremony_import(
    organization: str,
    year: int,
    *,
    uow_factory: UnitOfWorkFactory,
    catalog: CatalogSource,
    ceremonies: CeremonySource,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
) -> ImportContext:
    context = ImportContext(
        uow_factory=uow_factory,
        catalog=catalog,
        ceremonies=ceremonies,
        settings=settings or ImportSettings(),
        thresholds=thresholds,
        organization=organization,
        year=year,
    )
    return await default_ceremony_pipeline().run(context)


async def run_manifest(
    manifest_id: UUID,
    *,
    uow_factory: UnitOfWorkFactory,
    catalog: CatalogSource,
    settings: ImportSettings | None = None,
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS,
    include_failed: bool = False,
) -> ImportContext:
    context = ImportContext(
        uow_factory=uow_factory,
        catalog=catalog,
        settings=settings or ImportSettings(),
        thresholds=thresholds,
        manifest_id=manifest_id,
        include_failed=include_failed,
    )
    return await manifest_pipeline().run(context)

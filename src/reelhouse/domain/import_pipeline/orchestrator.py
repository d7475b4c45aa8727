"""Phase-based orchestrator for manifest imports."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from .collect import collect_ceremony
from .materialize import materialize
from .resolve import resolve_manifest_entities

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .context import ImportContext

log = getLogger(__name__)


class ImportPhase(Protocol):
    """Contract implemented by each import phase."""

    name: str

    async def run(self, context: ImportContext) -> None: ...


@dataclass(slots=True)
class ImportPipeline:
    """Compose and execute the ordered import phases."""

    phases: Sequence[ImportPhase] = field(default_factory=tuple)

    async def run(self, context: ImportContext) -> ImportContext:
        """Execute the configured phases in order against ``context``."""

        for phase in self.phases:
            log.debug("Running %s phase (manifest %s)", phase.name, context.manifest_id)
            await phase.run(context)
        return context


@dataclass(slots=True)
class CollectPhase(ImportPhase):
    name: str = "collect"

    async def run(self, context: ImportContext) -> None:
        if context.ceremonies is None or context.organization is None or context.year is None:
            raise RuntimeError("Ceremony source, organization and year required for collection")
        result = await collect_ceremony(
            context.organization,
            context.year,
            uow_factory=context.uow_factory,
            source=context.ceremonies,
            fuzzy_matching=context.settings.fuzzy_matching,
        )
        context.collection = result
        context.manifest_id = result.manifest_id


@dataclass(slots=True)
class ResolvePhase(ImportPhase):
    name: str = "resolve"

    async def run(self, context: ImportContext) -> None:
        context.resolution = await resolve_manifest_entities(
            context.require_manifest_id(),
            uow_factory=context.uow_factory,
            source=context.catalog,
            settings=context.settings,
            thresholds=context.thresholds,
            include_failed=context.include_failed,
        )


@dataclass(slots=True)
class MaterializePhase(ImportPhase):
    name: str = "materialize"

    async def run(self, context: ImportContext) -> None:
        context.materialization = materialize(
            context.require_manifest_id(), uow_factory=context.uow_factory
        )

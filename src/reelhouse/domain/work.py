"""Handlers for queued work units, shared by every queue backend.

A handler receives the JSON payload of one unit. Errors listed in
``RETRYABLE_ERRORS`` are retried by the queue under the unit's budget; any other
error, or a spent budget, ends a manifest entry in ``entry_failed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final
from uuid import UUID

from reelhouse.domain.admission import DEFAULT_THRESHOLDS
from reelhouse.domain.catalog_items import item_from_payload, process_catalog_item
from reelhouse.domain.errors import SourceUnavailableError
from reelhouse.domain.import_pipeline import mark_entry_exhausted, resolve_entry, settle_manifest
from reelhouse.domain.policy import ImportSettings

if TYPE_CHECKING:
    from collections.abc import Mapping

    from reelhouse.domain.admission import AdmissionThresholds
    from reelhouse.domain.catalog_items import ItemOutcome
    from reelhouse.domain.import_pipeline import EntryOutcome
    from reelhouse.domain.ports import CatalogSource, UnitOfWorkFactory

RETRYABLE_ERRORS: Final[tuple[type[Exception], ...]] = (SourceUnavailableError,)


@dataclass(frozen=True, slots=True)
class WorkHandlers:
    uow_factory: UnitOfWorkFactory
    catalog: CatalogSource
    settings: ImportSettings = field(default_factory=ImportSettings)
    thresholds: AdmissionThresholds = DEFAULT_THRESHOLDS

    async def catalog_item(self, payload: Mapping[str, object]) -> ItemOutcome:
        item, source_label = item_from_payload(payload)
        return await process_catalog_item(
            item,
            uow_factory=self.uow_factory,
            source=self.catalog,
            thresholds=self.thresholds,
            source_label=source_label,
        )

    async def manifest_entry(self, payload: Mapping[str, object]) -> EntryOutcome:
        """Resolve one entry, then materialize its manifest if it was the last one."""

        manifest_id, entry_id = entry_ids(payload)
        outcome = await resolve_entry(
            entry_id,
            uow_factory=self.uow_factory,
            source=self.catalog,
            settings=self.settings,
            thresholds=self.thresholds,
        )
        settle_manifest(manifest_id, uow_factory=self.uow_factory)
        return outcome

    def entry_failed(self, payload: Mapping[str, object], error: BaseException) -> EntryOutcome:
        """Record an entry whose unit failed for good; its relations fail with it."""

        manifest_id, entry_id = entry_ids(payload)
        reason = str(error) or type(error).__name__
        outcome = mark_entry_exhausted(entry_id, reason, uow_factory=self.uow_factory)
        settle_manifest(manifest_id, uow_factory=self.uow_factory)
        return outcome


def entry_ids(payload: Mapping[str, object]) -> tuple[UUID, UUID]:
    try:
        return UUID(str(payload["manifest_id"])), UUID(str(payload["entry_id"]))
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Work unit payload names no manifest entry: {payload!r}") from exc

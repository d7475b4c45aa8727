"""Discovery scheduler: walk a catalog stream one unit at a time.

A step fetches the unit after ``last_completed_position``, emits one work unit
per catalog item and then advances the cursor with a compare-and-set. The
fetch happens before anything is written, so a failed fetch leaves the cursor
exactly where it was and the step can simply be retried. A repeated unit is
harmless because item processing is idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from reelhouse.domain.errors import CursorNotFoundError, SourceUnavailableError
from reelhouse.domain.model import CursorStatus, StreamKind, new_cursor
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, WorkUnit

if TYPE_CHECKING:
    from reelhouse.domain.model import CatalogItem, ImportCursor
    from reelhouse.domain.ports import CatalogSource, UnitOfWorkFactory, WorkQueue

log = getLogger(__name__)

RESOLVE_CATALOG_ITEM_TASK: Final[str] = "resolve_catalog_item"

# (exclusive lower popularity bound, priority); lower priorities run first
_PRIORITY_BANDS: Final[tuple[tuple[float, int], ...]] = ((100.0, 0), (50.0, 1), (20.0, 2))
_LOWEST_PRIORITY: Final[int] = 3


def work_priority(popularity: float | None) -> int:
    if popularity is None:
        return _LOWEST_PRIORITY
    for bound, priority in _PRIORITY_BANDS:
        if popularity > bound:
            return priority
    return _LOWEST_PRIORITY


def catalog_item_unit(item: CatalogItem, *, source: str | None = None) -> WorkUnit:
    return WorkUnit(
        queue=CATALOG_ITEMS_QUEUE,
        task=RESOLVE_CATALOG_ITEM_TASK,
        payload={"item": item.to_payload(), "source": source},
        priority=work_priority(item.popularity),
    )


@dataclass(frozen=True, slots=True)
class DiscoveryStepResult:
    stream: str
    position: int | None
    emitted: int = 0
    advanced: bool = False
    complete: bool = False


def open_cursor(
    stream: str,
    *,
    uow_factory: UnitOfWorkFactory,
    kind: StreamKind = StreamKind.PAGES,
    start: int = 1,
    end: int | None = None,
    params: dict[str, object] | None = None,
) -> ImportCursor:
    """Create the cursor for ``stream`` unless one exists; return the stored cursor."""

    cursor = new_cursor(stream, kind=kind, start=start, end=end, params=params)
    now = datetime.now(UTC)
    cursor.started_at = now
    cursor.updated_at = now
    with uow_factory() as uow:
        stored = uow.repositories.cursors.create_if_absent(cursor)
        uow.commit()
    if stored.kind is not kind:
        log.warning("Cursor %s already exists as a %s stream", stream, stored.kind)
    return stored


async def run_discovery_step(
    stream: str,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    queue: WorkQueue,
) -> DiscoveryStepResult:
    with uow_factory() as uow:
        cursor = uow.repositories.cursors.get(stream)
    if cursor is None:
        raise CursorNotFoundError(f"No cursor for stream {stream!r}")
    if cursor.is_complete:
        return DiscoveryStepResult(stream=stream, position=None, complete=True)

    position = cursor.next_position
    if cursor.is_past_end(position):
        _complete_cursor(stream, uow_factory=uow_factory)
        return DiscoveryStepResult(stream=stream, position=None, complete=True)

    try:
        page = await source.fetch_page(cursor, position)
    except SourceUnavailableError as exc:
        log.warning("Fetching %s at %d failed: %s", stream, position, exc)
        raise

    for item in page.items:
        queue.enqueue(catalog_item_unit(item, source=stream))

    complete = not page.items or not page.has_more or cursor.is_past_end(position + 1)
    now = datetime.now(UTC)
    with uow_factory() as uow:
        advanced = uow.repositories.cursors.advance(stream, position, complete=complete, now=now)
        uow.commit()

    if advanced:
        log.info(
            "Stream %s: position %d emitted %d items%s",
            stream,
            position,
            len(page.items),
            " (complete)" if complete else "",
        )
    else:
        log.info("Stream %s: position %d was already completed elsewhere", stream, position)
    return DiscoveryStepResult(
        stream=stream,
        position=position,
        emitted=len(page.items),
        advanced=advanced,
        complete=complete and advanced,
    )


async def run_discovery(
    stream: str,
    *,
    uow_factory: UnitOfWorkFactory,
    source: CatalogSource,
    queue: WorkQueue,
    max_steps: int | None = None,
) -> list[DiscoveryStepResult]:
    """Run steps until the stream completes or ``max_steps`` have run."""

    results: list[DiscoveryStepResult] = []
    while max_steps is None or len(results) < max_steps:
        result = await run_discovery_step(
            stream, uow_factory=uow_factory, source=source, queue=queue
        )
        results.append(result)
        if result.complete or result.position is None:
            break
    return results


def _complete_cursor(stream: str, *, uow_factory: UnitOfWorkFactory) -> None:
    now = datetime.now(UTC)
    with uow_factory() as uow:
        cursor = uow.repositories.cursors.get(stream)
        if cursor is not None and not cursor.is_complete:
            cursor.status = CursorStatus.COMPLETE
            cursor.completed_at = now
            cursor.updated_at = now
            uow.commit()

"""Persisted position within a discovery stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reelhouse.domain.model.enums import CursorStatus, StreamKind

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class ImportCursor:
    """Position state for one stream.

    ``last_completed_position`` starts one below ``start_position`` and only ever
    moves forward by one; ``current_position`` is the next unit to fetch.
    """

    stream: str
    kind: StreamKind = StreamKind.PAGES
    start_position: int = 1
    end_position: int | None = None
    current_position: int = 1
    last_completed_position: int = 0
    status: CursorStatus = CursorStatus.IN_PROGRESS
    params: dict[str, object] = field(default_factory=dict)
    error: str | None = None
    started_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def next_position(self) -> int:
        return self.last_completed_position + 1

    @property
    def is_complete(self) -> bool:
        return self.status is CursorStatus.COMPLETE

    def is_past_end(self, position: int) -> bool:
        return self.end_position is not None and position > self.end_position


def new_cursor(
    stream: str,
    *,
    kind: StreamKind = StreamKind.PAGES,
    start: int = 1,
    end: int | None = None,
    params: dict[str, object] | None = None,
) -> ImportCursor:
    if end is not None and end < start:
        raise ValueError(f"Cursor end {end} precedes start {start}")
    return ImportCursor(
        stream=stream,
        kind=kind,
        start_position=start,
        end_position=end,
        current_position=start,
        last_completed_position=start - 1,
        params=dict(params or {}),
    )

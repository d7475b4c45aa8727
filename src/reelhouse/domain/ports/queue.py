"""Port for the job queue collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

CATALOG_ITEMS_QUEUE: Final[str] = "catalog_items"
MANIFEST_QUEUE: Final[str] = "manifests"

DEFAULT_PRIORITY: Final[int] = 3


@dataclass(frozen=True, slots=True)
class WorkUnit:
    """One unit of work; the payload must be JSON-serializable."""

    queue: str
    task: str
    payload: Mapping[str, object] = field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY


@dataclass(frozen=True, slots=True)
class QueueCounts:
    queued: int = 0
    in_flight: int = 0

    @property
    def idle(self) -> bool:
        return self.queued == 0 and self.in_flight == 0


@runtime_checkable
class WorkQueue(Protocol):
    """At-least-once queue with per-unit retries and per-queue counts."""

    def enqueue(self, unit: WorkUnit) -> None: ...

    def counts(self, queue: str) -> QueueCounts: ...

"""Ports connecting the import domain to storage, sources and queues."""

from __future__ import annotations

from collections.abc import Callable

from .fetching import CatalogSource, CeremonySource
from .persistence import (
    AdmissionRepository,
    CursorRepository,
    EntityRepository,
    ManifestRepository,
    NominationRepository,
)
from .queue import (
    CATALOG_ITEMS_QUEUE,
    MANIFEST_QUEUE,
    QueueCounts,
    WorkQueue,
    WorkUnit,
)
from .unit_of_work import ImportRepositories, ImportUnitOfWork, RepositoryCollection, UnitOfWork

type UnitOfWorkFactory = Callable[[], ImportUnitOfWork]

__all__ = [
    "CATALOG_ITEMS_QUEUE",
    "MANIFEST_QUEUE",
    "AdmissionRepository",
    "CatalogSource",
    "CeremonySource",
    "CursorRepository",
    "EntityRepository",
    "ImportRepositories",
    "ImportUnitOfWork",
    "ManifestRepository",
    "NominationRepository",
    "QueueCounts",
    "RepositoryCollection",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "WorkQueue",
    "WorkUnit",
]

"""SQLAlchemy adapter package for reelhouse."""

from __future__ import annotations

from .mappings import (
    CLASS_BY_KIND,
    TABLE_BY_KIND,
    create_all_tables,
    mapper_registry,
    start_mappers,
)
from .repositories import (
    SqlAlchemyAdmissionRepository,
    SqlAlchemyCursorRepository,
    SqlAlchemyEntityRepository,
    SqlAlchemyManifestRepository,
    SqlAlchemyNominationRepository,
)
from .unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "CLASS_BY_KIND",
    "TABLE_BY_KIND",
    "SqlAlchemyAdmissionRepository",
    "SqlAlchemyCursorRepository",
    "SqlAlchemyEntityRepository",
    "SqlAlchemyImportUnitOfWork",
    "SqlAlchemyManifestRepository",
    "SqlAlchemyNominationRepository",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]

"""Audit trail of admission decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reelhouse.domain.model.enums import AdmissionTier, EntityKind, ExternalNamespace

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class AdmissionRecord:
    kind: EntityKind
    namespace: ExternalNamespace
    value: str
    tier: AdmissionTier
    criteria_met: list[str] = field(default_factory=list)
    criteria_failed: list[str] = field(default_factory=list)
    signals: dict[str, object] = field(default_factory=dict)
    source: str | None = None
    decided_at: datetime | None = None
    id: int | None = None

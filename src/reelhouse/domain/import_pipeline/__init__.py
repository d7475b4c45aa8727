"""Staged manifest import for relation-bearing sources.

A batch moves through three explicit phases that share nothing but the
persisted manifest:

* collect: parse the source into entity and relation entries;
* resolve: resolve every entity entry against the catalog;
* materialize: create relations whose entities are all resolved.
"""

from __future__ import annotations

from .collect import CollectedBatch, CollectionResult, collect, collect_ceremony
from .context import ImportContext
from .materialize import MaterializationSummary, materialize
from .orchestrator import CollectPhase, ImportPhase, ImportPipeline, MaterializePhase, ResolvePhase
from .resolve import (
    RESOLVE_MANIFEST_ENTRY_TASK,
    EntryOutcome,
    ResolutionReport,
    enqueue_manifest_entries,
    mark_entry_exhausted,
    resolve_entry,
    resolve_manifest_entities,
    settle_manifest,
)
from .runner import default_ceremony_pipeline, manifest_pipeline, run_ceremony_import, run_manifest

__all__ = [
    "RESOLVE_MANIFEST_ENTRY_TASK",
    "CollectPhase",
    "CollectedBatch",
    "CollectionResult",
    "EntryOutcome",
    "ImportContext",
    "ImportPhase",
    "ImportPipeline",
    "MaterializationSummary",
    "MaterializePhase",
    "ResolutionReport",
    "ResolvePhase",
    "collect",
    "collect_ceremony",
    "default_ceremony_pipeline",
    "enqueue_manifest_entries",
    "manifest_pipeline",
    "mark_entry_exhausted",
    "materialize",
    "resolve_entry",
    "resolve_manifest_entities",
    "run_ceremony_import",
    "run_manifest",
    "settle_manifest",
]

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import pytest

from reelhouse.adapters.celery import CeleryWorkQueue, celery_app, create_app, tasks
from reelhouse.config.queue import QueueConfig
from reelhouse.domain.discovery import RESOLVE_CATALOG_ITEM_TASK
from reelhouse.domain.errors import SourceUnavailableError
from reelhouse.domain.import_pipeline import (
    RESOLVE_MANIFEST_ENTRY_TASK,
    collect_ceremony,
    enqueue_manifest_entries,
)
from reelhouse.domain.model import EntryStatus, ManifestStatus, RelationStatus
from reelhouse.domain.policy import ImportSettings, JobRetryPolicy
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE, WorkUnit
from reelhouse.domain.work import WorkHandlers
from tests.helpers.catalog import (
    NOMINEES_PER_CATEGORY,
    PERSON_CATEGORIES,
    FakeCatalogSource,
    FakeCeremonySource,
    ceremony_catalog,
    person_ceremony_payload,
)
from tests.helpers.queue import InMemoryWorkQueue

if TYPE_CHECKING:
    from collections.abc import Callable

    from reelhouse.adapters.sqlalchemy.unit_of_work import SqlAlchemyImportUnitOfWork

MEMORY_BROKER = QueueConfig(broker_url="memory://")
CATEGORIES = PERSON_CATEGORIES[:1]
ENTRY_COUNT = NOMINEES_PER_CATEGORY * 2
NO_PLACEHOLDERS = ImportSettings(placeholder_on_unavailable=False)


class FakeInspector:
    def __init__(self, active: dict[str, list[dict[str, object]]] | None) -> None:
        self._active = active

    def active(self) -> dict[str, list[dict[str, object]]] | None:
        return self._active

    def reserved(self) -> dict[str, list[dict[str, object]]] | None:
        return {
            "worker-b@host": [{"id": "r1", "delivery_info": {"routing_key": MANIFEST_QUEUE}}]
        }


def _unit(queue: str, number: int) -> WorkUnit:
    return WorkUnit(
        queue=queue,
        task=RESOLVE_CATALOG_ITEM_TASK,
        payload={"item": {"number": number}},
        priority=number % 2,
    )


def _queued_entries(
    uow_factory: Callable[[], SqlAlchemyImportUnitOfWork],
) -> tuple[UUID, list[dict[str, object]]]:
    ceremonies = FakeCeremonySource({("oscars", 1995): person_ceremony_payload(CATEGORIES)})
    collection = asyncio.run(
        collect_ceremony("oscars", 1995, uow_factory=uow_factory, source=ceremonies)
    )
    recorder = InMemoryWorkQueue()
    enqueue_manifest_entries(collection.manifest_id, uow_factory=uow_factory, queue=recorder)
    payloads = [dict(unit.payload) for unit in recorder.pending_units(MANIFEST_QUEUE)]
    return collection.manifest_id, payloads


def _use_handlers(
    monkeypatch: pytest.MonkeyPatch,
    uow_factory: Callable[[], SqlAlchemyImportUnitOfWork],
    catalog: FakeCatalogSource,
) -> None:
    handlers = WorkHandlers(uow_factory=uow_factory, catalog=catalog, settings=NO_PLACEHOLDERS)
    monkeypatch.setattr(tasks, "worker_handlers", lambda: handlers)


def test_queued_counts_come_from_the_broker() -> None:
    queue_name = f"units-{uuid4().hex}"
    producer = CeleryWorkQueue(create_app(MEMORY_BROKER), inspect_timeout=0.1)
    observer = CeleryWorkQueue(create_app(MEMORY_BROKER), inspect_timeout=0.1)

    for number in range(3):
        producer.enqueue(_unit(queue_name, number))

    assert observer.queued(queue_name) == 3
    assert producer.queued(queue_name) == 3


def test_undeclared_queue_holds_nothing() -> None:
    queue = CeleryWorkQueue(create_app(MEMORY_BROKER), inspect_timeout=0.1)

    assert queue.queued(f"never-used-{uuid4().hex}") == 0


def test_in_flight_counts_active_and_reserved_units_per_queue(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    app = create_app(MEMORY_BROKER)
    active = {
        "worker-a@host": [
            {"id": "a1", "delivery_info": {"routing_key": MANIFEST_QUEUE}},
            {"id": "a2", "delivery_info": {"routing_key": CATALOG_ITEMS_QUEUE}},
        ]
    }
    timeouts: list[float] = []

    def inspect(timeout: float) -> FakeInspector:
        timeouts.append(timeout)
        return FakeInspector(active)

    monkeypatch.setattr(app.control, "inspect", inspect)
    queue = CeleryWorkQueue(app, inspect_timeout=0.25)

    assert queue.in_flight(MANIFEST_QUEUE) == 2
    assert queue.in_flight(CATALOG_ITEMS_QUEUE) == 1
    assert timeouts == [0.25, 0.25]


def test_in_flight_is_zero_when_no_worker_answers(monkeypatch: pytest.MonkeyPatch) -> None:
    app = create_app(MEMORY_BROKER)
    monkeypatch.setattr(app.control, "inspect", lambda timeout: FakeInspector(None))
    queue = CeleryWorkQueue(app, inspect_timeout=0.1)

    assert queue.in_flight(CATALOG_ITEMS_QUEUE) == 0


def test_tasks_route_to_their_queues() -> None:
    routes = celery_app.conf.task_routes

    assert routes[RESOLVE_CATALOG_ITEM_TASK] == {"queue": CATALOG_ITEMS_QUEUE}
    assert routes[RESOLVE_MANIFEST_ENTRY_TASK] == {"queue": MANIFEST_QUEUE}
    assert {queue.name for queue in celery_app.conf.task_queues} == {
        CATALOG_ITEMS_QUEUE,
        MANIFEST_QUEUE,
    }
    assert celery_app.conf.task_acks_late


def test_tasks_retry_catalog_outages_with_backoff() -> None:
    for name in (RESOLVE_CATALOG_ITEM_TASK, RESOLVE_MANIFEST_ENTRY_TASK):
        task = celery_app.tasks[name]
        assert task.autoretry_for == (SourceUnavailableError,)
        assert task.acks_late
        assert task.retry_kwargs == tasks.TASK_OPTIONS["retry_kwargs"]


def test_retry_options_follow_the_retry_policy() -> None:
    options = tasks.retry_options(
        JobRetryPolicy(max_attempts=4, backoff_seconds=3.0, max_backoff_seconds=30)
    )

    assert options["retry_kwargs"] == {"max_retries": 3}
    assert options["retry_backoff"] == 3
    assert options["retry_backoff_max"] == 30
    assert options["autoretry_for"] == (SourceUnavailableError,)


def test_retry_options_keep_a_minimal_backoff() -> None:
    options = tasks.retry_options(JobRetryPolicy(max_attempts=1, backoff_seconds=0))

    assert options["retry_kwargs"] == {"max_retries": 0}
    assert options["retry_backoff"] == 1


def test_entry_task_raises_catalog_outage_for_celery_to_retry(
    monkeypatch: pytest.MonkeyPatch,
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    catalog.unavailable = True
    _use_handlers(monkeypatch, sqlite_unit_of_work, catalog)
    _, payloads = _queued_entries(sqlite_unit_of_work)

    with pytest.raises(SourceUnavailableError):
        tasks.resolve_manifest_entry(payload=payloads[0])

    with sqlite_unit_of_work() as uow:
        entry = uow.repositories.manifests.get_entity(UUID(str(payloads[0]["entry_id"])))
        assert entry is not None
        assert entry.status is EntryStatus.PENDING
        assert entry.attempts == 1


def test_entry_task_resolves_and_settles_the_last_entry(
    monkeypatch: pytest.MonkeyPatch,
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    _use_handlers(monkeypatch, sqlite_unit_of_work, catalog)
    manifest_id, payloads = _queued_entries(sqlite_unit_of_work)

    for payload in payloads:
        tasks.resolve_manifest_entry(payload=payload)

    with sqlite_unit_of_work() as uow:
        manifest = uow.repositories.manifests.get(manifest_id)
        assert manifest is not None
        assert manifest.status is ManifestStatus.COMPLETE
        assert uow.repositories.nominations.count() == NOMINEES_PER_CATEGORY


def test_failure_hook_marks_exhausted_entries_failed_and_settles(
    monkeypatch: pytest.MonkeyPatch,
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    catalog = ceremony_catalog(CATEGORIES)
    _use_handlers(monkeypatch, sqlite_unit_of_work, catalog)
    manifest_id, payloads = _queued_entries(sqlite_unit_of_work)
    task = celery_app.tasks[RESOLVE_MANIFEST_ENTRY_TASK]

    for number, payload in enumerate(payloads):
        error = SourceUnavailableError("catalog down", source="fake")
        task.on_failure(error, f"task-{number}", (), {"payload": payload}, None)

    assert len(payloads) == ENTRY_COUNT
    assert catalog.detail_calls == []
    with sqlite_unit_of_work() as uow:
        manifests = uow.repositories.manifests
        manifest = manifests.get(manifest_id)
        assert manifest is not None
        assert manifest.status is ManifestStatus.FAILED
        assert manifests.entity_counts(manifest_id) == {EntryStatus.FAILED: ENTRY_COUNT}
        assert manifests.relation_counts(manifest_id) == {
            RelationStatus.FAILED: NOMINEES_PER_CATEGORY
        }


def test_failure_hook_logs_payloads_without_an_entry(
    caplog: pytest.LogCaptureFixture,
    monkeypatch: pytest.MonkeyPatch,
    sqlite_unit_of_work: Callable[[], SqlAlchemyImportUnitOfWork],
) -> None:
    _use_handlers(monkeypatch, sqlite_unit_of_work, ceremony_catalog(CATEGORIES))
    task = celery_app.tasks[RESOLVE_MANIFEST_ENTRY_TASK]

    task.on_failure(RuntimeError("boom"), "task-x", (), {"payload": {}}, None)

    assert "cannot record failed entry" in caplog.text

"""Celery application shared by the processes that enqueue work and the workers.

Each logical queue is a broker queue of the same name and every task is routed to
its queue by name. Priorities follow the Redis transport: 0 is delivered first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from celery import Celery
from kombu import Queue

from reelhouse.config.queue import QueueConfig, get_queue_config
from reelhouse.domain.discovery import RESOLVE_CATALOG_ITEM_TASK
from reelhouse.domain.import_pipeline import RESOLVE_MANIFEST_ENTRY_TASK
from reelhouse.domain.ports import CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE

if TYPE_CHECKING:
    from collections.abc import Sequence

TASK_QUEUES: Final[dict[str, str]] = {
    RESOLVE_CATALOG_ITEM_TASK: CATALOG_ITEMS_QUEUE,
    RESOLVE_MANIFEST_ENTRY_TASK: MANIFEST_QUEUE,
}
PRIORITY_STEPS: Final[list[int]] = [0, 1, 2, 3]


def create_app(config: QueueConfig | None = None) -> Celery:
    active = config or get_queue_config()
    app = Celery(
        "reelhouse",
        broker=active.broker_url,
        include=["reelhouse.adapters.celery.tasks"],
    )
    app.conf.task_queues = tuple(
        Queue(name, routing_key=name) for name in (CATALOG_ITEMS_QUEUE, MANIFEST_QUEUE)
    )
    app.conf.update(
        task_default_queue=CATALOG_ITEMS_QUEUE,
        task_routes={task: {"queue": queue} for task, queue in TASK_QUEUES.items()},
        # a unit is acknowledged only once it ran, so a crashed worker's unit is redelivered
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=active.worker_concurrency,
        task_ignore_result=True,
        task_serializer="json",
        accept_content=["json"],
        broker_transport_options={
            "queue_order_strategy": "priority",
            "priority_steps": PRIORITY_STEPS,
        },
        timezone="UTC",
    )
    return app


celery_app = create_app()


def run_worker(
    queues: Sequence[str],
    *,
    concurrency: int | None = None,
    loglevel: str = "INFO",
    app: Celery = celery_app,
) -> None:
    """Consume ``queues`` in this process until it is stopped."""

    argv = ["worker", f"--queues={','.join(queues)}", f"--loglevel={loglevel}"]
    if concurrency is not None:
        argv.append(f"--concurrency={concurrency}")
    app.worker_main(argv)

"""``WorkQueue`` backed by the Celery broker.

Counts are read from shared state only: the broker's depth for queued units and
the workers' own reports for units being processed. Every process therefore
sees the same counts, whichever process enqueued the work.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from reelhouse.adapters.celery.app import celery_app
from reelhouse.config.queue import get_queue_config
from reelhouse.domain.ports import QueueCounts

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from celery import Celery

    from reelhouse.domain.ports import WorkQueue, WorkUnit

log = getLogger(__name__)


class CeleryWorkQueue:
    def __init__(self, app: Celery | None = None, *, inspect_timeout: float | None = None) -> None:
        self.app = app if app is not None else celery_app
        self.inspect_timeout = (
            inspect_timeout
            if inspect_timeout is not None
            else get_queue_config().inspect_timeout_seconds
        )

    def enqueue(self, unit: WorkUnit) -> None:
        self.app.send_task(
            unit.task,
            kwargs={"payload": dict(unit.payload)},
            queue=unit.queue,
            priority=unit.priority,
        )
        log.debug("Sent %s to %s (priority %d)", unit.task, unit.queue, unit.priority)

    def counts(self, queue: str) -> QueueCounts:
        return QueueCounts(queued=self.queued(queue), in_flight=self.in_flight(queue))

    def queued(self, queue: str) -> int:
        """Units waiting in the broker; a queue nobody declared yet holds none."""

        with self.app.connection_for_read() as connection:
            try:
                declared = connection.default_channel.queue_declare(queue=queue, passive=True)
            except connection.channel_errors:
                return 0
        return declared.message_count

    def in_flight(self, queue: str) -> int:
        """Units of ``queue`` that workers are running or have reserved."""

        inspector = self.app.control.inspect(timeout=self.inspect_timeout)
        return sum(
            _count_for_queue(replies, queue)
            for replies in (inspector.active(), inspector.reserved())
        )


def _count_for_queue(
    replies: Mapping[str, Iterable[Mapping[str, object]]] | None, queue: str
) -> int:
    if not replies:
        return 0
    total = 0
    for tasks in replies.values():
        for task in tasks:
            delivery = task.get("delivery_info")
            if isinstance(delivery, dict) and delivery.get("routing_key") == queue:
                total += 1
    return total


if TYPE_CHECKING:
    _queue_check: WorkQueue = CeleryWorkQueue()

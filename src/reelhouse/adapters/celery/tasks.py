"""Celery tasks that run queued work units inside a worker process.

Catalog outages are retried by Celery with exponential backoff under the unit's
budget. When a manifest entry's unit fails for good, ``ImportTask.on_failure``
records the entry as failed.
"""

from __future__ import annotations

import asyncio
from functools import cache
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final

from celery import Task, shared_task

from reelhouse.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyImportUnitOfWork,
    is_started,
    startup,
)
from reelhouse.adapters.tmdb import TmdbCatalogSource
from reelhouse.config import get_import_settings
from reelhouse.config.admission import get_admission_thresholds
from reelhouse.domain.discovery import RESOLVE_CATALOG_ITEM_TASK
from reelhouse.domain.errors import ManifestNotFoundError
from reelhouse.domain.import_pipeline import RESOLVE_MANIFEST_ENTRY_TASK
from reelhouse.domain.work import RETRYABLE_ERRORS, WorkHandlers

if TYPE_CHECKING:
    from billiard.einfo import ExceptionInfo

    from reelhouse.domain.policy import JobRetryPolicy

log = getLogger(__name__)


def retry_options(policy: JobRetryPolicy) -> dict[str, Any]:
    """Celery task options carrying a unit's retry budget."""

    return {
        "autoretry_for": RETRYABLE_ERRORS,
        "retry_backoff": max(1, round(policy.backoff_seconds)),
        "retry_backoff_max": max(1, round(policy.max_backoff_seconds)),
        "retry_jitter": True,
        "retry_kwargs": {"max_retries": policy.max_retries},
        "acks_late": True,
    }


TASK_OPTIONS: Final[dict[str, Any]] = retry_options(get_import_settings().retry)


@cache
def worker_handlers() -> WorkHandlers:
    """Handlers wired to the worker's database and catalog, built once per process."""

    if not is_started():
        startup()
    return WorkHandlers(
        uow_factory=SqlAlchemyImportUnitOfWork,
        catalog=TmdbCatalogSource(),
        settings=get_import_settings(),
        thresholds=get_admission_thresholds(),
    )


class ImportTask(Task):
    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        einfo: ExceptionInfo,
    ) -> None:
        if self.name != RESOLVE_MANIFEST_ENTRY_TASK:
            log.error("Task %s [%s] failed: %s", self.name, task_id, exc)
            return
        payload = kwargs.get("payload", {})
        try:
            worker_handlers().entry_failed(payload, exc)
        except (ManifestNotFoundError, ValueError):
            log.exception(
                "Task %s [%s]: cannot record failed entry %r", self.name, task_id, payload
            )


@shared_task(bind=True, base=ImportTask, name=RESOLVE_CATALOG_ITEM_TASK, **TASK_OPTIONS)
def resolve_catalog_item(self: Task, payload: dict[str, Any]) -> None:
    log.debug("Catalog item unit %s, attempt %d", self.request.id, self.request.retries + 1)
    asyncio.run(worker_handlers().catalog_item(payload))


@shared_task(bind=True, base=ImportTask, name=RESOLVE_MANIFEST_ENTRY_TASK, **TASK_OPTIONS)
def resolve_manifest_entry(self: Task, payload: dict[str, Any]) -> None:
    log.debug(
        "Manifest entry %s, attempt %d", payload.get("entry_id"), self.request.retries + 1
    )
    asyncio.run(worker_handlers().manifest_entry(payload))

"""Celery adapter: the broker-backed job queue and its worker tasks."""

from __future__ import annotations

from .app import celery_app, create_app, run_worker
from .queue import CeleryWorkQueue

__all__ = ["CeleryWorkQueue", "celery_app", "create_app", "run_worker"]

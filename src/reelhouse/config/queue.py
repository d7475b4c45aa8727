"""Job queue settings: the Celery broker and how workers and producers use it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_float, env_int, env_str
from .errors import ConfigurationError

DEFAULT_BROKER_URL: Final[str] = "redis://localhost:6379/0"
DEFAULT_INSPECT_TIMEOUT_SECONDS: Final[float] = 1.0
DEFAULT_WORKER_CONCURRENCY: Final[int] = 4


@dataclass(frozen=True, slots=True)
class QueueConfig:
    broker_url: str = DEFAULT_BROKER_URL
    # how long a count waits for workers to report their active and reserved units
    inspect_timeout_seconds: float = DEFAULT_INSPECT_TIMEOUT_SECONDS
    worker_concurrency: int = DEFAULT_WORKER_CONCURRENCY


def get_queue_config() -> QueueConfig:
    concurrency = env_int("REELHOUSE_WORKER_CONCURRENCY", DEFAULT_WORKER_CONCURRENCY)
    if concurrency < 1:
        raise ConfigurationError("REELHOUSE_WORKER_CONCURRENCY must be at least 1")
    return QueueConfig(
        broker_url=env_str("CELERY_BROKER_URL", DEFAULT_BROKER_URL) or DEFAULT_BROKER_URL,
        inspect_timeout_seconds=env_float(
            "REELHOUSE_QUEUE_INSPECT_TIMEOUT", DEFAULT_INSPECT_TIMEOUT_SECONDS
        ),
        worker_concurrency=concurrency,
    )

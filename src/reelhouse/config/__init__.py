"""Application configuration helpers."""

from __future__ import annotations

from .catalog import CatalogConfig, get_catalog_config
from .ceremony import CeremonyConfig, get_ceremony_config
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .imports import ImportSettings, JobRetryPolicy, get_import_settings
from .logging import configure_logging
from .queue import QueueConfig, get_queue_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CacheConfig",
    "CatalogConfig",
    "CeremonyConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "ImportSettings",
    "JobRetryPolicy",
    "MissingConfigurationError",
    "QueueConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_catalog_config",
    "get_ceremony_config",
    "get_database_config",
    "get_import_settings",
    "get_queue_config",
    "get_storage_config",
    "require_env_vars",
]

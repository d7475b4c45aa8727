"""Errors raised while reading reelhouse settings from the environment."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """An environment value is present but unusable (bad number, bad flag)."""


class MissingConfigurationError(ConfigurationError):
    """A required variable such as ``TMDB_API_KEY`` is unset or blank."""

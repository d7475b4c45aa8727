"""Reelhouse: resumable movie, people and award-nomination imports."""

from __future__ import annotations

from importlib import metadata

try:
    __version__ = metadata.version("reelhouse")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = ["__version__"]

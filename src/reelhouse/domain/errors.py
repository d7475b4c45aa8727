"""Error taxonomy for imports.

Only batch-level structural failures escape a work unit; item and entity level
problems are recorded on the manifest instead of raised.
"""

from __future__ import annotations


class ReelhouseError(RuntimeError):
    """Base class for import errors."""


class SourceUnavailableError(ReelhouseError):
    """A transient failure talking to an external source (network, rate limit, 5xx)."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class MalformedPayloadError(ReelhouseError):
    """A source payload that cannot be parsed into a batch."""


class BatchFailedError(ReelhouseError):
    """Raised when a whole batch is marked failed and the work unit must fail with it."""

    def __init__(self, message: str, *, batch_key: str) -> None:
        super().__init__(message)
        self.batch_key = batch_key


class ManifestNotFoundError(ReelhouseError, LookupError):
    """Raised when a manifest id or entry id does not exist."""


class CursorNotFoundError(ReelhouseError, LookupError):
    """Raised when a discovery stream has no cursor."""

"""Exception hierarchy shared across bookmarchive."""

from __future__ import annotations


class BookmarchiveError(Exception):
    """Base class for all bookmarchive errors."""


class ConfigError(BookmarchiveError):
    """Invalid or incomplete configuration; fatal at startup."""


class Cancelled(BookmarchiveError):
    """Raised at a suspension point once shutdown has been requested."""


class FetchError(BookmarchiveError):
    """Fetching from the remote API failed after retries."""


class ApiError(FetchError):
    """Remote API answered with a non-success status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"API request failed with status {status_code}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class StoreError(BookmarchiveError):
    """Persistent store operation failed."""


class ConnectionClosed(StoreError):
    """The store was used after it was closed."""


class CheckpointMissing(StoreError):
    """The singleton checkpoint row is gone; the archive is corrupt."""


class QueryError(StoreError):
    """The full-text query could not be parsed by the index."""


__all__ = [
    "BookmarchiveError",
    "ConfigError",
    "Cancelled",
    "FetchError",
    "ApiError",
    "StoreError",
    "ConnectionClosed",
    "CheckpointMissing",
    "QueryError",
]

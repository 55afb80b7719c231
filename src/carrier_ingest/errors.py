from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for errors raised by the ingestion engine."""


class ValidationError(IngestError, ValueError):
    """Malformed identifier or job request, raised before any fetch."""


class FetchError(IngestError):
    """Registry answered, but not with a usable page. Not retried."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientFetchError(FetchError):
    """Network failure, timeout, 429 or 5xx. Retried with backoff."""


class RecordNotFoundError(FetchError):
    """The page is not a company snapshot (unknown, inactive or search form)."""


class RegistryUnavailableError(IngestError):
    """The registry cannot be reached at all; fails the whole job."""

"""Exception types shared across the package."""

from typing import Optional


class WarEraError(Exception):
    """Base class for all WarEra errors."""


class RemoteError(WarEraError):
    """Remote API call failed (non-2xx, malformed envelope or transport failure)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class StorageError(WarEraError):
    """Local database could not be opened, read or written."""


class ProtocolError(WarEraError):
    """Remote feed violated an ordering or shape precondition."""


class ValidationError(WarEraError, ValueError):
    """Missing or invalid input, rejected before any I/O."""


class SyncInProgressError(WarEraError):
    """A sync run is already in flight."""


class CacheTimeoutError(WarEraError, TimeoutError):
    """Reference cache was not ready within the caller's budget."""

"""
Exceptions raised by the fetch-cache layer.
"""
from typing import Any, Optional


class CacheError(Exception):
    """Base class for cache failures."""
    pass


class FetchError(CacheError):
    """Raised when a fetcher fails on a caller-awaited path."""

    def __init__(self, key: Any, cause: Optional[BaseException] = None):
        self.key = key
        self.cause = cause
        message = f"Fetch failed for {key!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StoreError(CacheError):
    """Raised when the backing CacheStore fails on get/set/remove."""

    def __init__(self, key: Any, operation: str, cause: Optional[BaseException] = None):
        self.key = key
        self.operation = operation
        self.cause = cause
        message = f"Store {operation} failed for {key!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)

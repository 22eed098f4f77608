from __future__ import annotations

from typing import Optional, Sequence


class DrummingError(Exception):
    """Base exception for the practice assistant."""


class InvalidParameterError(DrummingError):
    """Caller-supplied value outside its allowed domain (tempo, subdivision, missing field)."""


class EntryNotFoundError(DrummingError):
    """Lookup by id or name filter matched nothing."""

    def __init__(self, message: str, available: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.available = list(available or [])


class StorageError(DrummingError):
    """Catalog document cannot be read or written."""

    def __init__(self, message: str, path: Optional[object] = None):
        super().__init__(message)
        self.path = path


class CatalogUnreadableError(StorageError):
    """Catalog file exists but cannot be read or parsed."""


class CatalogUnwritableError(StorageError):
    """Catalog file cannot be replaced on disk."""

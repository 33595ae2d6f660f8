"""Custom exception classes for Folioscope."""


class FolioscopeError(Exception):
    """Base exception for all Folioscope errors."""

    pass


class ConfigError(FolioscopeError):
    """Configuration error."""

    pass


class StorageError(FolioscopeError):
    """Persistence layer error."""

    pass


class DurableStorageError(StorageError):
    """Durable key-value tier read or write failed."""

    pass


class QuotaExceededError(DurableStorageError):
    """Durable key-value tier is out of space."""

    pass


class StoreOpenError(StorageError):
    """Snapshot database could not be opened."""

    pass


class PriceSourceError(FolioscopeError):
    """External price API error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

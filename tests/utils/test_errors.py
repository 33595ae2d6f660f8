"""Tests for error handling utilities."""

from folioscope.utils.errors import (
    ConfigError,
    DurableStorageError,
    FolioscopeError,
    PriceSourceError,
    QuotaExceededError,
    StorageError,
    StoreOpenError,
)


def test_folioscope_error_is_exception() -> None:
    """FolioscopeError should be an Exception."""
    error = FolioscopeError("test error")
    assert isinstance(error, Exception)
    assert str(error) == "test error"


def test_config_error_inherits_from_folioscope_error() -> None:
    """ConfigError should inherit from FolioscopeError."""
    error = ConfigError("invalid config")
    assert isinstance(error, FolioscopeError)


def test_quota_error_is_a_durable_storage_error() -> None:
    """QuotaExceededError should be catchable as a durable storage failure."""
    error = QuotaExceededError("full")
    assert isinstance(error, DurableStorageError)
    assert isinstance(error, StorageError)


def test_store_open_error_is_not_a_durable_error() -> None:
    """StoreOpenError belongs to the snapshot store, not the cache tier."""
    error = StoreOpenError("locked")
    assert isinstance(error, StorageError)
    assert not isinstance(error, DurableStorageError)


def test_price_source_error_keeps_status_code() -> None:
    """PriceSourceError should carry the HTTP status when there is one."""
    error = PriceSourceError("rate limited", status_code=429)
    assert isinstance(error, FolioscopeError)
    assert error.status_code == 429
    assert PriceSourceError("timeout").status_code is None

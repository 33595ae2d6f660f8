"""Utility modules for Folioscope."""

from folioscope.utils.errors import (
    ConfigError,
    DurableStorageError,
    FolioscopeError,
    PriceSourceError,
    QuotaExceededError,
    StorageError,
    StoreOpenError,
)
from folioscope.utils.health import HealthChecker, HealthStatus
from folioscope.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigError",
    "DurableStorageError",
    "FolioscopeError",
    "HealthChecker",
    "HealthStatus",
    "PriceSourceError",
    "QuotaExceededError",
    "StorageError",
    "StoreOpenError",
    "configure_logging",
    "get_logger",
]

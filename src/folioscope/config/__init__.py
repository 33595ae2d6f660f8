"""Configuration module."""

from folioscope.config.settings import (
    CacheConfig,
    DatabaseConfig,
    PriceConfig,
    RedisConfig,
    Settings,
    SnapshotConfig,
    load_settings,
)

__all__ = [
    "Settings",
    "CacheConfig",
    "DatabaseConfig",
    "PriceConfig",
    "RedisConfig",
    "SnapshotConfig",
    "load_settings",
]

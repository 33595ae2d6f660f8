"""Storage module: tiered price cache and snapshot persistence."""

from folioscope.storage.cache import CacheStats, TieredCache, create_cache
from folioscope.storage.database import Database
from folioscope.storage.durable import (
    DurableStore,
    RedisDurableStore,
    StorageChange,
    create_durable_store,
)
from folioscope.storage.models import Base, SnapshotRecord
from folioscope.storage.snapshots import SnapshotStore

__all__ = [
    "Base",
    "CacheStats",
    "Database",
    "DurableStore",
    "RedisDurableStore",
    "SnapshotRecord",
    "SnapshotStore",
    "StorageChange",
    "TieredCache",
    "create_cache",
    "create_durable_store",
]

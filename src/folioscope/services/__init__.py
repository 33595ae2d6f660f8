"""Background services."""

from folioscope.services.scheduler import HoldingsProvider, SnapshotScheduler

__all__ = ["HoldingsProvider", "SnapshotScheduler"]

"""Health check utilities."""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import text

from folioscope.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class HealthStatus:
    """Health status of the engine."""

    healthy: bool
    database: bool
    cache: bool
    message: str
    memory_only: bool = False


class HealthChecker:
    """Check health of the snapshot database and the price cache."""

    def __init__(self, db: Any, cache: Any) -> None:
        """Initialize health checker.

        Args:
            db: Database instance.
            cache: TieredCache instance.
        """
        self._db = db
        self._cache = cache

    async def check(self) -> HealthStatus:
        """Check health of all components.

        A cache running in memory-only mode is still reported healthy,
        with ``memory_only`` set so callers can surface the degradation.

        Returns:
            HealthStatus with component statuses.
        """
        db_ok = await self._check_database()
        cache_ok, memory_only = await self._check_cache()

        healthy = db_ok and cache_ok

        if healthy:
            message = "All systems operational"
            if memory_only:
                message += " (cache is memory-only)"
        else:
            failed = []
            if not db_ok:
                failed.append("database")
            if not cache_ok:
                failed.append("cache")
            message = f"Components unhealthy: {', '.join(failed)}"

        return HealthStatus(
            healthy=healthy,
            database=db_ok,
            cache=cache_ok,
            message=message,
            memory_only=memory_only,
        )

    async def _check_database(self) -> bool:
        """Check database connectivity."""
        try:
            async with self._db.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed: {}", str(e))
            return False

    async def _check_cache(self) -> tuple[bool, bool]:
        """Check the cache answers a stats query."""
        try:
            stats = await self._cache.stats()
            return True, bool(stats.is_memory_only)
        except Exception as e:
            logger.error("Cache health check failed: {}", str(e))
            return False, False

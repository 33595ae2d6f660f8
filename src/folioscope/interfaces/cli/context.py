"""CLI context management for database and cache connections."""

from dataclasses import dataclass

from folioscope.config.settings import Settings, load_settings
from folioscope.core.analytics import AnalyticsEngine
from folioscope.core.models import TokenPrice
from folioscope.storage.cache import TieredCache, create_cache
from folioscope.storage.database import Database
from folioscope.storage.durable import DurableStore, create_durable_store
from folioscope.storage.snapshots import SnapshotStore
from folioscope.utils.errors import DurableStorageError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """Context holding CLI dependencies."""

    db: Database
    store: SnapshotStore
    cache: TieredCache
    analytics: AnalyticsEngine
    settings: Settings
    durable: DurableStore | None = None


_context: CLIContext | None = None


async def get_context() -> CLIContext:
    """Get or create CLI context with database and cache connections.

    Returns:
        CLIContext with active connections.
    """
    global _context

    if _context is None:
        settings = load_settings()
        db = Database(settings)
        store = SnapshotStore(db)

        durable: DurableStore | None = None
        if settings.redis.enabled:
            try:
                durable = await create_durable_store(
                    settings.redis.url,
                    channel=f"{settings.cache.storage_key}:changes",
                    quota_bytes=settings.cache.quota_bytes,
                )
            except DurableStorageError as e:
                logger.warning("Durable cache tier unavailable: {}", str(e))

        cache = await create_cache(
            durable,
            settings.cache,
            encode=TokenPrice.to_dict,
            decode=TokenPrice.from_dict,
        )
        _context = CLIContext(
            db=db,
            store=store,
            cache=cache,
            analytics=AnalyticsEngine(store),
            settings=settings,
            durable=durable,
        )

    return _context


async def close_context() -> None:
    """Close all connections in CLI context."""
    global _context

    if _context is not None:
        await _context.cache.dispose()
        if _context.durable is not None:
            await _context.durable.close()
        await _context.db.close()
        _context = None

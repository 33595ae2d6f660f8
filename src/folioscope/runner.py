"""Engine runner: owns the lifecycle of every Folioscope component."""

import asyncio
import sys

from folioscope.config.settings import Settings, load_settings
from folioscope.core.analytics import AnalyticsEngine
from folioscope.core.models import TokenPrice
from folioscope.data.prices import CoinGeckoClient, PriceService
from folioscope.services.scheduler import HoldingsProvider, SnapshotScheduler
from folioscope.storage.cache import TieredCache, create_cache
from folioscope.storage.database import Database
from folioscope.storage.durable import RedisDurableStore, create_durable_store
from folioscope.storage.snapshots import SnapshotStore
from folioscope.utils.errors import DurableStorageError
from folioscope.utils.health import HealthChecker, HealthStatus
from folioscope.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


class EngineRunner:
    """Starts and stops the cache, snapshot store, analytics and scheduler.

    Components are created in ``start()`` and released in ``stop()``;
    nothing is created at import time.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        holdings_provider: HoldingsProvider | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            settings: Settings to use; loaded from the environment if omitted.
            holdings_provider: Source of current holdings for auto-snapshots.
        """
        self._settings = settings
        self._holdings_provider = holdings_provider
        self._db: Database | None = None
        self._durable: RedisDurableStore | None = None
        self.cache: TieredCache | None = None
        self.store: SnapshotStore | None = None
        self.analytics: AnalyticsEngine | None = None
        self.prices: PriceService | None = None
        self._price_client: CoinGeckoClient | None = None
        self._scheduler: SnapshotScheduler | None = None
        self._scheduler_task: asyncio.Task[None] | None = None
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._stopping: bool = False

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings()
        return self._settings

    async def _create_durable(self) -> RedisDurableStore | None:
        """Connect the shared cache tier, or None to run memory-only."""
        if not self.settings.redis.enabled:
            return None
        try:
            return await create_durable_store(
                self.settings.redis.url,
                channel=f"{self.settings.cache.storage_key}:changes",
                quota_bytes=self.settings.cache.quota_bytes,
            )
        except DurableStorageError as e:
            logger.warning("Durable cache tier unavailable, using memory only: {}", str(e))
            return None

    async def start(self) -> None:
        """Initialize all components.

        Raises:
            StoreOpenError: If the snapshot database cannot be opened.
        """
        settings = self.settings
        configure_logging(level=settings.log_level)
        logger.info("Starting {}...", settings.app_name)

        try:
            self._db = Database(settings)
            self.store = SnapshotStore(self._db)
            await self.store.open()

            self._durable = await self._create_durable()
            self.cache = await create_cache(
                self._durable,
                settings.cache,
                encode=TokenPrice.to_dict,
                decode=TokenPrice.from_dict,
            )
            logger.info(
                "Price cache ready ({})",
                "durable" if self._durable else "memory-only",
            )

            self._price_client = CoinGeckoClient(
                base_url=settings.prices.base_url,
                timeout=settings.prices.timeout,
            )
            self.prices = PriceService(
                self.cache, self._price_client, currency=settings.prices.currency
            )
            self.analytics = AnalyticsEngine(self.store)

            if self._holdings_provider and settings.snapshot.auto_snapshot:
                self._scheduler = SnapshotScheduler(
                    self.store,
                    self._holdings_provider,
                    interval_seconds=settings.snapshot.interval_minutes * 60,
                    max_historical_days=settings.snapshot.max_historical_days,
                    chain_id=settings.snapshot.chain_id,
                )
                self._scheduler_task = asyncio.create_task(self._scheduler.start())
                logger.info("Snapshot scheduler started")

            self._shutdown_event.clear()
            self._stopping = False
            logger.info("{} started", settings.app_name)
        except Exception as e:
            logger.error("Failed to start {}: {}", settings.app_name, str(e))
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop all components, flushing the cache before closing storage."""
        if self._stopping:
            return
        self._stopping = True

        logger.info("Stopping Folioscope...")
        self._shutdown_event.set()

        if self._scheduler:
            await self._scheduler.stop()
        if self._scheduler_task:
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass
            self._scheduler_task = None

        if self.cache:
            await self.cache.dispose()
            logger.info("Cache flushed")

        if self._durable:
            await self._durable.close()

        if self._price_client:
            await self._price_client.close()

        if self._db:
            await self._db.close()
            logger.info("Database closed")

        logger.info("Folioscope stopped")

    async def health(self) -> HealthStatus:
        """Check database and cache health."""
        return await HealthChecker(db=self._db, cache=self.cache).check()

    async def run(self) -> None:
        """Run until a shutdown signal arrives."""
        await self.start()

        if sys.platform != "win32":
            import signal

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(self.stop()))

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            if not self._stopping:
                await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the engine is running."""
        return not self._shutdown_event.is_set()


def run_engine() -> None:
    """Entry point to run the engine."""
    runner = EngineRunner()
    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        # On Windows, Ctrl+C raises KeyboardInterrupt
        pass

"""Periodic portfolio snapshot service."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from folioscope.core.models import DiscoveredToken, PortfolioSnapshot
from folioscope.storage.snapshots import DEFAULT_CHAIN_ID, SnapshotStore
from folioscope.utils.errors import StoreOpenError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)

HoldingsProvider = Callable[[], Awaitable[tuple[str | None, Sequence[DiscoveredToken]]]]


class SnapshotScheduler:
    """Takes a snapshot of the connected wallet on a fixed interval.

    The holdings provider returns the connected wallet address (None when
    no wallet is connected) and its current holdings. After each snapshot,
    history older than ``max_historical_days`` is pruned.
    """

    def __init__(
        self,
        store: SnapshotStore,
        holdings_provider: HoldingsProvider,
        interval_seconds: float = 3600.0,
        max_historical_days: float = 90,
        chain_id: str = DEFAULT_CHAIN_ID,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Snapshot store to write to.
            holdings_provider: Async callable returning (wallet, holdings).
            interval_seconds: Seconds between snapshots.
            max_historical_days: Age beyond which snapshots are pruned.
            chain_id: Chain recorded on each snapshot.
        """
        self._store = store
        self._holdings_provider = holdings_provider
        self.interval_seconds = interval_seconds
        self.max_historical_days = max_historical_days
        self.chain_id = chain_id
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the scheduler loop is running."""
        return self._running

    async def take_snapshot(self) -> PortfolioSnapshot | None:
        """Snapshot the connected wallet now.

        Returns:
            The new snapshot, or None when there is no wallet or no holdings.
        """
        wallet, holdings = await self._holdings_provider()
        if not wallet or not holdings:
            logger.debug("Skipping snapshot: no wallet or no holdings")
            return None

        snapshot = await self._store.create_snapshot(
            wallet, holdings, chain_id=self.chain_id
        )
        logger.info(
            "Snapshot taken for {}: ${:.2f} ({} tokens)",
            snapshot.wallet_address[:10],
            snapshot.total_value,
            snapshot.token_count,
        )
        await self._store.prune_old_snapshots(wallet, self.max_historical_days)
        return snapshot

    async def start(self) -> None:
        """Run the snapshot loop until ``stop()`` is called."""
        self._running = True
        logger.info("Starting snapshot scheduler (interval={}s)", self.interval_seconds)

        while self._running:
            try:
                await self.take_snapshot()
            except StoreOpenError as e:
                logger.error("Snapshot store unavailable: {}", str(e))
            except Exception as e:
                logger.error("Snapshot error: {}", str(e))

            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        """Stop the snapshot loop."""
        self._running = False
        logger.info("Snapshot scheduler stopped")

"""Tests for the snapshot scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from folioscope.core.models import DiscoveredToken
from folioscope.services.scheduler import SnapshotScheduler
from folioscope.utils.errors import StoreOpenError

WALLET = "0xabc"


@pytest.fixture
def mock_store():
    """Create mock snapshot store."""
    store = MagicMock()
    snapshot = MagicMock(wallet_address=WALLET, total_value=100.0, token_count=1)
    store.create_snapshot = AsyncMock(return_value=snapshot)
    store.prune_old_snapshots = AsyncMock(return_value=0)
    return store


def holdings_provider(wallet, holdings):
    return AsyncMock(return_value=(wallet, holdings))


HOLDINGS = [DiscoveredToken(address="0x1", symbol="AVAX", name="Avalanche", value=100.0)]


@pytest.mark.asyncio
async def test_take_snapshot_stores_and_prunes(mock_store) -> None:
    """A snapshot is stored, then history beyond the retention window is pruned."""
    scheduler = SnapshotScheduler(
        mock_store,
        holdings_provider(WALLET, HOLDINGS),
        max_historical_days=30,
        chain_id="1",
    )

    snapshot = await scheduler.take_snapshot()

    assert snapshot is mock_store.create_snapshot.return_value
    mock_store.create_snapshot.assert_called_once_with(WALLET, HOLDINGS, chain_id="1")
    mock_store.prune_old_snapshots.assert_called_once_with(WALLET, 30)


@pytest.mark.asyncio
async def test_take_snapshot_without_wallet(mock_store) -> None:
    """Nothing is stored while no wallet is connected."""
    scheduler = SnapshotScheduler(mock_store, holdings_provider(None, HOLDINGS))

    assert await scheduler.take_snapshot() is None
    mock_store.create_snapshot.assert_not_called()


@pytest.mark.asyncio
async def test_take_snapshot_without_holdings(mock_store) -> None:
    """Nothing is stored for an empty wallet."""
    scheduler = SnapshotScheduler(mock_store, holdings_provider(WALLET, []))

    assert await scheduler.take_snapshot() is None
    mock_store.create_snapshot.assert_not_called()


@pytest.mark.asyncio
async def test_scheduler_loop_survives_errors(mock_store) -> None:
    """Errors in one tick are logged and the loop keeps going."""
    mock_store.create_snapshot = AsyncMock(
        side_effect=[
            StoreOpenError("locked"),
            RuntimeError("boom"),
            MagicMock(wallet_address=WALLET, total_value=100.0, token_count=1),
        ]
    )
    scheduler = SnapshotScheduler(
        mock_store, holdings_provider(WALLET, HOLDINGS), interval_seconds=0.01
    )

    task = asyncio.create_task(scheduler.start())
    for _ in range(50):
        if mock_store.create_snapshot.call_count >= 3:
            break
        await asyncio.sleep(0.01)

    assert scheduler.is_running
    await scheduler.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert not scheduler.is_running
    assert mock_store.create_snapshot.call_count >= 3

"""Tests for CLI commands."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from folioscope.core.analytics import AnalyticsEngine
from folioscope.core.models import DatabaseStats, PortfolioSnapshot, TokenSnapshot
from folioscope.interfaces.cli.main import app
from folioscope.storage.cache import CacheStats
from folioscope.utils.errors import ConfigError, StoreOpenError

runner = CliRunner()

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
WALLET = "0xabc0000000000000000000000000000000000001"


def make_snapshot(timestamp: datetime, value: float, snapshot_id: int = 1) -> PortfolioSnapshot:
    token = TokenSnapshot(
        address="0xb31f66aa3c1e785363f0875a1b74e27b85fd66c7",
        symbol="WAVAX",
        name="Wrapped AVAX",
        balance="1",
        price=value,
        value=value,
        allocation=100.0,
    )
    return PortfolioSnapshot(
        id=snapshot_id,
        wallet_address=WALLET,
        timestamp=timestamp,
        total_value=value,
        token_count=1,
        tokens=(token,),
        chain_id="43114",
    )


def make_context() -> MagicMock:
    mock_context = MagicMock()
    mock_context.store = AsyncMock()
    mock_context.cache = AsyncMock()
    mock_context.cache.stats = AsyncMock(
        return_value=CacheStats(
            memory_entries=3,
            storage_entries=2,
            storage_size=512,
            is_storage_available=True,
            is_memory_only=False,
        )
    )
    return mock_context


def invoke(mock_context: MagicMock, args: list[str], **kwargs):
    with (
        patch("folioscope.interfaces.cli.main.get_context", return_value=mock_context),
        patch("folioscope.interfaces.cli.main.close_context") as mock_close,
    ):
        result = runner.invoke(app, args, **kwargs)
    return result, mock_close


def test_cli_version() -> None:
    """CLI should show version."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.stdout


def test_cli_status_command() -> None:
    """CLI status should show database and cache state."""
    mock_context = make_context()
    mock_context.store.get_database_stats = AsyncMock(
        return_value=DatabaseStats(
            total_snapshots=4,
            wallets=[WALLET],
            oldest_snapshot=NOW - timedelta(days=1),
            newest_snapshot=NOW,
            size_estimate=2048,
        )
    )

    result, mock_close = invoke(mock_context, ["status"])

    assert result.exit_code == 0
    assert "Folioscope Status" in result.stdout
    assert "durable" in result.stdout
    mock_close.assert_called_once()


def test_cli_reports_unavailable_store() -> None:
    """A snapshot store that cannot be opened exits with an error."""
    mock_context = make_context()
    mock_context.store.get_database_stats = AsyncMock(side_effect=StoreOpenError("locked"))

    result, mock_close = invoke(mock_context, ["status"])

    assert result.exit_code == 1
    assert "Snapshot store unavailable" in result.stdout
    mock_close.assert_called_once()


def test_cli_reports_invalid_configuration() -> None:
    """Settings that fail validation exit with an error instead of a traceback."""
    with (
        patch(
            "folioscope.interfaces.cli.main.get_context",
            side_effect=ConfigError("Invalid configuration: cache.ttl_seconds"),
        ),
        patch("folioscope.interfaces.cli.main.close_context") as mock_close,
    ):
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.stdout
    mock_close.assert_called_once()


def test_cli_snapshots_list() -> None:
    """CLI snapshots list should show a wallet's snapshots."""
    mock_context = make_context()
    mock_context.store.get_snapshots = AsyncMock(
        return_value=[make_snapshot(NOW, 1234.5, snapshot_id=7)]
    )

    result, _ = invoke(mock_context, ["snapshots", "list", WALLET, "--limit", "5"])

    assert result.exit_code == 0
    assert "$1,234.50" in result.stdout
    mock_context.store.get_snapshots.assert_called_once_with(WALLET, limit=5)


def test_cli_snapshots_list_empty() -> None:
    """CLI snapshots list should say when there is no history."""
    mock_context = make_context()
    mock_context.store.get_snapshots = AsyncMock(return_value=[])

    result, _ = invoke(mock_context, ["snapshots", "list", WALLET])

    assert result.exit_code == 0
    assert "No snapshots yet" in result.stdout


def test_cli_snapshots_prune() -> None:
    """CLI snapshots prune should delete old snapshots."""
    mock_context = make_context()
    mock_context.store.prune_old_snapshots = AsyncMock(return_value=3)

    result, _ = invoke(mock_context, ["snapshots", "prune", WALLET, "--days", "30"])

    assert result.exit_code == 0
    assert "Deleted 3 snapshots" in result.stdout
    mock_context.store.prune_old_snapshots.assert_called_once_with(WALLET, 30.0)


def test_cli_snapshots_clear_wallet() -> None:
    """CLI snapshots clear with a wallet clears only that wallet."""
    mock_context = make_context()
    mock_context.store.clear_wallet_data = AsyncMock(return_value=2)

    result, _ = invoke(mock_context, ["snapshots", "clear", WALLET])

    assert result.exit_code == 0
    assert "Deleted 2 snapshots" in result.stdout
    mock_context.store.clear_all_data.assert_not_called()


def test_cli_snapshots_clear_all_asks_first() -> None:
    """CLI snapshots clear without a wallet needs confirmation."""
    mock_context = make_context()
    mock_context.store.clear_all_data = AsyncMock(return_value=9)

    declined, _ = invoke(mock_context, ["snapshots", "clear"], input="n\n")
    mock_context.store.clear_all_data.assert_not_called()

    confirmed, _ = invoke(mock_context, ["snapshots", "clear"], input="y\n")

    assert declined.exit_code == 1
    assert confirmed.exit_code == 0
    assert "Deleted 9 snapshots" in confirmed.stdout


def test_cli_analytics_command() -> None:
    """CLI analytics should report performance from stored snapshots."""
    store = MagicMock()
    store.get_latest_snapshot = AsyncMock(return_value=make_snapshot(NOW, 100.0, 2))
    store.get_snapshot_at_time = AsyncMock(
        return_value=make_snapshot(NOW - timedelta(days=7), 80.0, 1)
    )
    store.get_snapshots = AsyncMock(return_value=[])
    mock_context = make_context()
    mock_context.store = store
    mock_context.analytics = AnalyticsEngine(store, clock=lambda: NOW)

    result, _ = invoke(mock_context, ["analytics", WALLET, "--period", "7d"])

    assert result.exit_code == 0
    assert "Total value: $100.00" in result.stdout
    assert "+25.00%" in result.stdout
    assert "risk: high" in result.stdout


def test_cli_analytics_without_snapshots() -> None:
    """CLI analytics should say when a wallet has no history."""
    mock_context = make_context()
    mock_context.store.get_latest_snapshot = AsyncMock(return_value=None)

    result, _ = invoke(mock_context, ["analytics", WALLET])

    assert result.exit_code == 0
    assert "No snapshots" in result.stdout


def test_cli_cache_stats() -> None:
    """CLI cache stats should show both tiers."""
    mock_context = make_context()

    result, _ = invoke(mock_context, ["cache", "stats"])

    assert result.exit_code == 0
    assert "512 bytes" in result.stdout


def test_cli_cache_clear() -> None:
    """CLI cache clear should empty the cache."""
    mock_context = make_context()

    result, _ = invoke(mock_context, ["cache", "clear"])

    assert result.exit_code == 0
    assert "Cache cleared" in result.stdout
    mock_context.cache.clear.assert_called_once()
    mock_context.cache.clear_durable.assert_not_called()


def test_cli_cache_clear_durable_only() -> None:
    """CLI cache clear --durable-only should keep in-process entries."""
    mock_context = make_context()

    result, _ = invoke(mock_context, ["cache", "clear", "--durable-only"])

    assert result.exit_code == 0
    assert "Durable cache cleared" in result.stdout
    mock_context.cache.clear_durable.assert_called_once()
    mock_context.cache.clear.assert_not_called()

"""Tests for the engine runner."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from folioscope.config.settings import DatabaseConfig, RedisConfig, Settings
from folioscope.core.models import DiscoveredToken
from folioscope.runner import EngineRunner
from folioscope.utils.errors import DurableStorageError, StoreOpenError

MEMORY_DSN = "sqlite+aiosqlite:///:memory:"


def make_settings(**kwargs) -> Settings:
    return Settings(
        database=DatabaseConfig(dsn=MEMORY_DSN),
        redis=RedisConfig(enabled=False),
        **kwargs,
    )


def test_engine_runner_has_required_methods() -> None:
    """EngineRunner should have start, stop, and run methods."""
    runner = EngineRunner.__new__(EngineRunner)
    assert hasattr(runner, "start")
    assert hasattr(runner, "stop")
    assert hasattr(runner, "run")


@pytest.mark.asyncio
async def test_engine_runner_starts_memory_only() -> None:
    """Without Redis the runner starts with a memory-only cache."""
    runner = EngineRunner(settings=make_settings())
    await runner.start()

    try:
        assert runner.cache is not None
        assert runner.cache.has_storage is False
        assert runner.store is not None
        assert runner.analytics is not None
        assert runner.prices is not None

        health = await runner.health()
        assert health.healthy is True
    finally:
        await runner.stop()

    assert runner.is_running is False


@pytest.mark.asyncio
async def test_engine_runner_logs_app_name() -> None:
    """Lifecycle log lines name the configured application."""
    runner = EngineRunner(settings=make_settings(app_name="ledger"))

    with patch("folioscope.runner.logger") as mock_logger:
        await runner.start()
        await runner.stop()

    mock_logger.info.assert_any_call("Starting {}...", "ledger")
    mock_logger.info.assert_any_call("{} started", "ledger")


@pytest.mark.asyncio
async def test_engine_runner_falls_back_when_redis_unreachable() -> None:
    """An unreachable Redis is logged and the cache runs memory-only."""
    settings = Settings(database=DatabaseConfig(dsn=MEMORY_DSN))
    with patch(
        "folioscope.runner.create_durable_store",
        side_effect=DurableStorageError("refused"),
    ):
        runner = EngineRunner(settings=settings)
        await runner.start()

    try:
        assert runner.cache.has_storage is False
    finally:
        await runner.stop()


@pytest.mark.asyncio
async def test_engine_runner_takes_scheduled_snapshots(tmp_path) -> None:
    """With a holdings provider the runner snapshots the wallet on start."""
    holdings = [DiscoveredToken(address="0x1", symbol="AVAX", name="Avalanche", value=42.0)]
    provider = AsyncMock(return_value=("0xABC", holdings))
    settings = Settings(
        database=DatabaseConfig(path=tmp_path / "snapshots.db"),
        redis=RedisConfig(enabled=False),
    )
    runner = EngineRunner(settings=settings, holdings_provider=provider)
    await runner.start()

    try:
        latest = None
        for _ in range(50):
            latest = await runner.store.get_latest_snapshot("0xabc")
            if latest is not None:
                break
            await asyncio.sleep(0.01)

        assert latest is not None
        assert latest.total_value == 42.0
    finally:
        await runner.stop()


@pytest.mark.asyncio
async def test_engine_runner_start_failure_cleans_up() -> None:
    """A store that cannot be opened stops the runner and re-raises."""
    runner = EngineRunner(
        settings=Settings(
            database=DatabaseConfig(dsn="nosuchdialect+nosuchdriver://localhost/x"),
            redis=RedisConfig(enabled=False),
        )
    )

    with pytest.raises(StoreOpenError):
        await runner.start()

    assert runner.is_running is False


@pytest.mark.asyncio
async def test_engine_runner_stop_flushes_cache_before_closing() -> None:
    """EngineRunner stop should dispose the cache, then close storage."""
    runner = EngineRunner.__new__(EngineRunner)
    calls: list[str] = []
    runner._scheduler = None
    runner._scheduler_task = None
    runner.cache = MagicMock()
    runner.cache.dispose = AsyncMock(side_effect=lambda: calls.append("cache"))
    runner._durable = MagicMock()
    runner._durable.close = AsyncMock(side_effect=lambda: calls.append("durable"))
    runner._price_client = AsyncMock()
    runner._db = MagicMock()
    runner._db.close = AsyncMock(side_effect=lambda: calls.append("db"))
    runner._shutdown_event = asyncio.Event()
    runner._stopping = False

    await runner.stop()

    assert calls == ["cache", "durable", "db"]
    assert runner._shutdown_event.is_set()


@pytest.mark.asyncio
async def test_engine_runner_stop_handles_none_components() -> None:
    """EngineRunner stop should handle components that never started."""
    runner = EngineRunner(settings=make_settings())

    # Should not raise
    await runner.stop()

    assert runner._stopping is True


@pytest.mark.asyncio
async def test_engine_runner_stop_prevents_double_stop() -> None:
    """EngineRunner stop should only run once (guard against double-stop)."""
    runner = EngineRunner(settings=make_settings())
    runner._db = AsyncMock()
    runner.cache = AsyncMock()

    await runner.stop()
    runner._db.close.assert_called_once()
    runner.cache.dispose.assert_called_once()

    runner._db.close.reset_mock()
    runner.cache.dispose.reset_mock()

    # Second stop should be a no-op
    await runner.stop()
    runner._db.close.assert_not_called()
    runner.cache.dispose.assert_not_called()

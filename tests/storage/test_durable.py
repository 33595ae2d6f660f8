"""Tests for the Redis durable tier."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import OutOfMemoryError

from folioscope.storage.durable import (
    RedisDurableStore,
    StorageChange,
    create_durable_store,
)
from folioscope.utils.errors import DurableStorageError, QuotaExceededError


@pytest.fixture
def mock_redis():
    """Create mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.publish = AsyncMock(return_value=1)
    return redis


def make_pubsub(messages: list[dict]) -> MagicMock:
    async def listen():
        for message in messages:
            yield message

    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = listen
    return pubsub


@pytest.mark.asyncio
async def test_read_returns_none_when_missing(mock_redis) -> None:
    """Reading a missing key returns None."""
    store = RedisDurableStore(mock_redis)
    assert await store.read("missing") is None


@pytest.mark.asyncio
async def test_read_decodes_bytes(mock_redis) -> None:
    """Redis bytes are returned as text."""
    mock_redis.get = AsyncMock(return_value=b'{"version": 1}')
    store = RedisDurableStore(mock_redis)
    assert await store.read("key") == '{"version": 1}'


@pytest.mark.asyncio
async def test_read_failure_raises_durable_error(mock_redis) -> None:
    """Redis errors on read become DurableStorageError."""
    mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
    store = RedisDurableStore(mock_redis)
    with pytest.raises(DurableStorageError):
        await store.read("key")


@pytest.mark.asyncio
async def test_write_sets_value_and_publishes_change(mock_redis) -> None:
    """A write stores the value and announces it with this store's origin."""
    store = RedisDurableStore(mock_redis, channel="changes")
    await store.write("key", "payload")

    mock_redis.set.assert_called_once_with("key", "payload")
    channel, message = mock_redis.publish.call_args.args
    assert channel == "changes"
    assert json.loads(message) == {"key": "key", "value": "payload", "origin": store.origin}


@pytest.mark.asyncio
async def test_write_over_quota_is_rejected(mock_redis) -> None:
    """Values larger than the quota never reach Redis."""
    store = RedisDurableStore(mock_redis, quota_bytes=4)
    with pytest.raises(QuotaExceededError):
        await store.write("key", "too large")
    mock_redis.set.assert_not_called()


@pytest.mark.asyncio
async def test_write_out_of_memory_is_quota_error(mock_redis) -> None:
    """Redis running out of memory is reported as a quota error."""
    mock_redis.set = AsyncMock(side_effect=OutOfMemoryError("OOM"))
    store = RedisDurableStore(mock_redis)
    with pytest.raises(QuotaExceededError):
        await store.write("key", "payload")


@pytest.mark.asyncio
async def test_write_failure_raises_durable_error(mock_redis) -> None:
    """Other Redis errors on write are not quota errors."""
    mock_redis.set = AsyncMock(side_effect=RedisConnectionError("down"))
    store = RedisDurableStore(mock_redis)
    with pytest.raises(DurableStorageError) as exc_info:
        await store.write("key", "payload")
    assert not isinstance(exc_info.value, QuotaExceededError)


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_write(mock_redis) -> None:
    """The write succeeds even if the change cannot be announced."""
    mock_redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))
    store = RedisDurableStore(mock_redis)
    await store.write("key", "payload")
    mock_redis.set.assert_called_once()


@pytest.mark.asyncio
async def test_delete_publishes_empty_value(mock_redis) -> None:
    """Deletes are announced with a null value."""
    store = RedisDurableStore(mock_redis)
    await store.delete("key")

    mock_redis.delete.assert_called_once_with("key")
    _, message = mock_redis.publish.call_args.args
    assert json.loads(message)["value"] is None


@pytest.mark.asyncio
async def test_changes_skip_own_writes(mock_redis) -> None:
    """Only changes from other origins are yielded."""
    store = RedisDurableStore(mock_redis, channel="changes")
    messages = [
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": json.dumps({"key": "k", "value": "a", "origin": store.origin})},
        {"type": "message", "data": json.dumps({"key": "k", "value": "b", "origin": "peer"}).encode()},
        {"type": "message", "data": b"not json"},
    ]
    pubsub = make_pubsub(messages)
    mock_redis.pubsub = MagicMock(return_value=pubsub)

    changes = [change async for change in store.changes()]

    assert changes == [StorageChange(key="k", value="b", origin="peer")]
    pubsub.subscribe.assert_called_once_with("changes")
    pubsub.unsubscribe.assert_called_once_with("changes")
    pubsub.aclose.assert_called_once()


def test_each_store_has_its_own_origin(mock_redis) -> None:
    """Two stores on the same Redis tell their writes apart."""
    assert RedisDurableStore(mock_redis).origin != RedisDurableStore(mock_redis).origin


@pytest.mark.asyncio
async def test_close_closes_connection(mock_redis) -> None:
    """close releases the Redis client."""
    store = RedisDurableStore(mock_redis)
    await store.close()
    mock_redis.aclose.assert_called_once()


@pytest.mark.asyncio
async def test_create_durable_store_pings_redis() -> None:
    """create_durable_store returns a store when Redis answers."""
    with patch("folioscope.storage.durable.Redis") as mock_redis_class:
        client = AsyncMock()
        mock_redis_class.from_url.return_value = client

        store = await create_durable_store("redis://localhost:6379/0", quota_bytes=10)

        client.ping.assert_called_once()
        assert store.redis is client
        assert store.quota_bytes == 10


@pytest.mark.asyncio
async def test_create_durable_store_unreachable() -> None:
    """An unreachable Redis raises DurableStorageError and closes the client."""
    with patch("folioscope.storage.durable.Redis") as mock_redis_class:
        client = AsyncMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        mock_redis_class.from_url.return_value = client

        with pytest.raises(DurableStorageError):
            await create_durable_store("redis://localhost:6379/0")

        client.aclose.assert_called_once()

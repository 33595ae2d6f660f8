"""Durable key-value tier shared between processes.

The tiered cache persists its envelope through a ``DurableStore``. Every
write is announced on a change channel so that other processes holding the
same cache can re-hydrate their in-process tier.
"""

import json
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import OutOfMemoryError, RedisError

from folioscope.utils.errors import DurableStorageError, QuotaExceededError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StorageChange:
    """Notification that a durable key was written by some context.

    ``value`` is None when the key was deleted.
    """

    key: str
    value: str | None
    origin: str


class DurableStore(Protocol):
    """String-keyed persistent store with a change-notification stream."""

    origin: str

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    def changes(self) -> AsyncIterator[StorageChange]: ...

    async def close(self) -> None: ...


class RedisDurableStore:
    """Redis-backed durable tier.

    Values are plain strings under their key. Writes and deletes publish a
    JSON notification on ``channel``; ``changes()`` yields notifications
    published by other instances only.
    """

    def __init__(
        self,
        redis: Redis,
        channel: str = "folioscope:storage_changes",
        quota_bytes: int | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            redis: Async Redis client.
            channel: Pub/sub channel used for change notifications.
            quota_bytes: Largest value accepted by ``write``; None for no limit.
        """
        self.redis = redis
        self.channel = channel
        self.quota_bytes = quota_bytes
        self.origin = uuid.uuid4().hex

    async def read(self, key: str) -> str | None:
        try:
            value = await self.redis.get(key)
        except RedisError as e:
            raise DurableStorageError(f"Failed to read {key}: {e}") from e
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def write(self, key: str, value: str) -> None:
        if self.quota_bytes is not None and len(value.encode()) > self.quota_bytes:
            raise QuotaExceededError(
                f"Value for {key} exceeds quota of {self.quota_bytes} bytes"
            )
        try:
            await self.redis.set(key, value)
        except OutOfMemoryError as e:
            raise QuotaExceededError(f"Redis is out of memory writing {key}") from e
        except RedisError as e:
            raise DurableStorageError(f"Failed to write {key}: {e}") from e
        await self._publish(key, value)

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            raise DurableStorageError(f"Failed to delete {key}: {e}") from e
        await self._publish(key, None)

    async def _publish(self, key: str, value: str | None) -> None:
        message = json.dumps({"key": key, "value": value, "origin": self.origin})
        try:
            await self.redis.publish(self.channel, message)
        except RedisError as e:
            # The write itself succeeded; peers converge on their next read.
            logger.warning("Failed to publish change for {}: {}", key, str(e))

    async def changes(self) -> AsyncIterator[StorageChange]:
        """Yield changes written by other instances until cancelled."""
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                change = self._parse_change(message.get("data"))
                if change is None or change.origin == self.origin:
                    continue
                yield change
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    @staticmethod
    def _parse_change(data: bytes | str | None) -> StorageChange | None:
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        try:
            payload = json.loads(data)
            return StorageChange(
                key=payload["key"],
                value=payload.get("value"),
                origin=payload.get("origin", ""),
            )
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.debug("Ignoring malformed change notification: {}", data)
            return None

    async def close(self) -> None:
        """Close Redis connection."""
        try:
            await self.redis.aclose()
        except RuntimeError:
            # Ignore "Event loop is closed" on Windows
            pass


async def create_durable_store(
    redis_url: str,
    channel: str = "folioscope:storage_changes",
    quota_bytes: int | None = None,
) -> RedisDurableStore:
    """Create a Redis durable store and verify the server answers.

    Raises:
        DurableStorageError: If Redis cannot be reached.
    """
    redis = Redis.from_url(redis_url)
    try:
        await redis.ping()
    except RedisError as e:
        await redis.aclose()
        raise DurableStorageError(f"Redis unavailable at {redis_url}: {e}") from e
    return RedisDurableStore(redis, channel=channel, quota_bytes=quota_bytes)

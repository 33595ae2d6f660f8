"""Two-tier cache: in-process dictionary backed by a shared durable store.

Reads hit the in-process tier first and fall back to the durable tier.
Writes land in the in-process tier immediately; the durable tier is
rewritten in full after a debounce window so that bursts of writes cost a
single durable write. Other processes announce their writes through the
durable store's change stream and this cache re-hydrates on each one.
"""

import asyncio
import contextlib
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from folioscope.config.settings import CacheConfig
from folioscope.storage.durable import DurableStore
from folioscope.utils.errors import DurableStorageError, QuotaExceededError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached value and the wall-clock time (epoch seconds) it was written."""

    value: Any
    written_at: float


@dataclass(frozen=True)
class ValidEnvelope:
    """Durable payload whose version matches this cache."""

    entries: dict[str, CacheEntry]


@dataclass(frozen=True)
class IncompatibleEnvelope:
    """Durable payload that cannot be used (wrong version or malformed)."""

    reason: str


Envelope = ValidEnvelope | IncompatibleEnvelope


@dataclass
class CacheStats:
    """Cache statistics for debugging and health reporting."""

    memory_entries: int
    storage_entries: int
    storage_size: int
    is_storage_available: bool
    is_memory_only: bool


def _identity(value: Any) -> Any:
    return value


def decode_envelope(
    raw: str | None,
    version: int,
    decode: Callable[[Any], Any] = _identity,
) -> Envelope:
    """Decode a durable payload into a tagged envelope.

    A missing payload is a valid, empty envelope.
    """
    if raw is None:
        return ValidEnvelope(entries={})

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return IncompatibleEnvelope(reason="payload is not valid JSON")

    if not isinstance(payload, dict):
        return IncompatibleEnvelope(reason="payload is not an object")
    if payload.get("version") != version:
        return IncompatibleEnvelope(
            reason=f"version {payload.get('version')!r} does not match {version}"
        )

    data = payload.get("data")
    if not isinstance(data, dict):
        return IncompatibleEnvelope(reason="payload has no data mapping")

    entries: dict[str, CacheEntry] = {}
    for key, item in data.items():
        try:
            entries[key] = CacheEntry(
                value=decode(item["value"]),
                written_at=float(item["written_at"]),
            )
        except (KeyError, TypeError, ValueError):
            return IncompatibleEnvelope(reason=f"entry {key!r} is malformed")
    return ValidEnvelope(entries=entries)


def encode_envelope(
    entries: dict[str, CacheEntry],
    version: int,
    encode: Callable[[Any], Any] = _identity,
) -> str:
    """Serialize entries into a versioned durable payload."""
    data = {
        key: {"value": encode(entry.value), "written_at": entry.written_at}
        for key, entry in entries.items()
    }
    return json.dumps({"version": version, "data": data})


class TieredCache:
    """Key-value cache with an in-process tier and an optional durable tier.

    All entries share one TTL. The durable tier keeps at most
    ``max_entries`` valid entries, the most recently written ones. If the
    durable store reports its quota is exhausted the cache switches to
    memory-only mode for the rest of its lifetime.

    Durable I/O failures are logged and treated as a miss (reads) or a
    no-op (writes); they never reach callers.
    """

    def __init__(
        self,
        durable: DurableStore | None = None,
        ttl_seconds: float = 300.0,
        debounce_seconds: float = 0.5,
        max_entries: int = 100,
        storage_key: str = "folioscope:price_cache",
        version: int = 1,
        encode: Callable[[Any], Any] | None = None,
        decode: Callable[[Any], Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            durable: Shared durable store, or None for a memory-only cache.
            ttl_seconds: Age past which an entry is expired.
            debounce_seconds: Quiet period before the durable tier is rewritten.
            max_entries: Durable tier capacity.
            storage_key: Durable key holding the envelope.
            version: Envelope version; other versions are discarded.
            encode: Converts values to JSON-compatible data.
            decode: Inverse of ``encode``.
            clock: Wall-clock source in epoch seconds.
        """
        self._durable = durable
        self._ttl = ttl_seconds
        self._debounce = debounce_seconds
        self._max_entries = max_entries
        self._storage_key = storage_key
        self._version = version
        self._encode = encode or _identity
        self._decode = decode or _identity
        self._clock = clock

        self._memory: dict[str, CacheEntry] = {}
        self._memory_only = False
        self._dirty = False
        self._sync_handle: asyncio.TimerHandle | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._sync_lock = asyncio.Lock()
        self._listener_task: asyncio.Task[None] | None = None

    @property
    def has_storage(self) -> bool:
        """Whether a durable tier was supplied."""
        return self._durable is not None

    @property
    def is_memory_only(self) -> bool:
        """Whether the cache has given up on its durable tier."""
        return self._memory_only

    @property
    def has_pending_sync(self) -> bool:
        return self._dirty

    def _durable_enabled(self) -> bool:
        return self._durable is not None and not self._memory_only

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.written_at > self._ttl

    # Lifecycle

    async def init(self) -> None:
        """Hydrate from the durable tier and subscribe to its changes."""
        if not self._durable_enabled():
            return
        loaded = await self.hydrate()
        logger.debug("Hydrated {} cache entries from {}", loaded, self._storage_key)
        if self._listener_task is None:
            self._listener_task = asyncio.create_task(self._listen_for_changes())

    async def flush(self) -> None:
        """Write any pending change to the durable tier now."""
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None
        if self._dirty and self._durable_enabled():
            await self._sync_to_storage()
        elif self._sync_task is not None and not self._sync_task.done():
            await self._sync_task

    async def dispose(self) -> None:
        """Flush pending writes and stop listening for changes."""
        await self.flush()
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None

    # Cache operations

    async def get(self, key: str) -> Any | None:
        """Get a value, checking the in-process tier before the durable tier.

        A valid durable hit is promoted into the in-process tier.
        """
        now = self._clock()

        entry = self._memory.get(key)
        if entry is not None and not self._is_expired(entry, now):
            return entry.value

        if not self._durable_enabled():
            return None

        entries, _ = await self._read_entries()
        stored = entries.get(key)
        if stored is not None and not self._is_expired(stored, now):
            self._memory.pop(key, None)
            self._memory[key] = stored
            return stored.value
        return None

    def set(self, key: str, value: Any) -> None:
        """Store a value in the in-process tier and schedule a durable sync."""
        # Re-insert so dict order is write order
        self._memory.pop(key, None)
        self._memory[key] = CacheEntry(value=value, written_at=self._clock())
        if self._durable_enabled():
            self._schedule_sync()

    async def clear(self) -> None:
        """Empty both tiers and drop any pending durable sync."""
        self._memory.clear()
        self._cancel_pending_sync()
        if self._durable_enabled():
            async with self._sync_lock:
                await self._delete_durable()

    async def clear_durable(self) -> None:
        """Empty only the durable tier; in-process entries are kept."""
        if self._durable is None:
            return
        async with self._sync_lock:
            await self._delete_durable()

    def get_all(self) -> dict[str, Any]:
        """Return all valid in-process entries, evicting expired ones."""
        now = self._clock()
        result: dict[str, Any] = {}
        expired: list[str] = []

        for key, entry in self._memory.items():
            if self._is_expired(entry, now):
                expired.append(key)
            else:
                result[key] = entry.value

        for key in expired:
            del self._memory[key]

        return result

    async def stats(self) -> CacheStats:
        """Get cache statistics."""
        now = self._clock()
        memory_entries = sum(
            1 for entry in self._memory.values() if not self._is_expired(entry, now)
        )

        storage_entries = 0
        storage_size = 0
        if self._durable_enabled():
            entries, storage_size = await self._read_entries()
            storage_entries = len(entries)

        return CacheStats(
            memory_entries=memory_entries,
            storage_entries=storage_entries,
            storage_size=storage_size,
            is_storage_available=self.has_storage,
            is_memory_only=self._memory_only,
        )

    async def hydrate(self) -> int:
        """Load valid durable entries into the in-process tier.

        A durable entry never replaces a newer in-process entry for the
        same key.

        Returns:
            Number of entries loaded.
        """
        if not self._durable_enabled():
            return 0

        entries, _ = await self._read_entries()
        now = self._clock()
        loaded = 0
        for key, entry in entries.items():
            if self._is_expired(entry, now):
                continue
            current = self._memory.get(key)
            if current is not None and current.written_at > entry.written_at:
                continue
            self._memory.pop(key, None)
            self._memory[key] = entry
            loaded += 1
        return loaded

    # Durable tier

    async def _read_entries(self) -> tuple[dict[str, CacheEntry], int]:
        """Read and decode the durable envelope.

        Returns:
            Decoded entries (expired ones included) and the payload size in bytes.
        """
        if self._durable is None:
            return {}, 0
        try:
            raw = await self._durable.read(self._storage_key)
        except DurableStorageError as e:
            logger.warning("Failed to read cache from durable storage: {}", str(e))
            return {}, 0

        envelope = decode_envelope(raw, self._version, self._decode)
        if isinstance(envelope, IncompatibleEnvelope):
            logger.debug("Discarding durable cache payload: {}", envelope.reason)
            await self._delete_durable()
            return {}, 0

        size = len(raw.encode()) if raw else 0
        return envelope.entries, size

    async def _delete_durable(self) -> None:
        if self._durable is None:
            return
        try:
            await self._durable.delete(self._storage_key)
        except DurableStorageError as e:
            logger.warning("Failed to clear durable cache: {}", str(e))

    def _schedule_sync(self) -> None:
        """Debounce a durable sync, restarting the window on every call."""
        self._dirty = True
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: the write stays pending until flush() or dispose().
            return
        self._sync_handle = loop.call_later(self._debounce, self._start_sync)

    def _start_sync(self) -> None:
        self._sync_handle = None
        self._sync_task = asyncio.get_running_loop().create_task(
            self._sync_to_storage()
        )

    def _cancel_pending_sync(self) -> None:
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None
        self._dirty = False

    async def _sync_to_storage(self) -> None:
        """Rewrite the durable envelope from the current in-process tier."""
        async with self._sync_lock:
            durable = self._durable
            if durable is None or self._memory_only:
                return
            self._dirty = False

            now = self._clock()
            # Newest first; equal timestamps fall back to write order
            valid = [
                (index, key, entry)
                for index, (key, entry) in enumerate(self._memory.items())
                if not self._is_expired(entry, now)
            ]
            valid.sort(key=lambda item: (item[2].written_at, item[0]), reverse=True)
            kept = {key: entry for _, key, entry in valid[: self._max_entries]}

            try:
                payload = encode_envelope(kept, self._version, self._encode)
            except (TypeError, ValueError) as e:
                logger.error("Cache values are not serializable: {}", str(e))
                return

            try:
                await durable.write(self._storage_key, payload)
            except QuotaExceededError as e:
                self._memory_only = True
                logger.warning(
                    "Durable storage quota exceeded, cache is now memory-only: {}",
                    str(e),
                )
            except DurableStorageError as e:
                logger.warning("Failed to sync cache to durable storage: {}", str(e))
            else:
                logger.debug("Synced {} cache entries to durable storage", len(kept))

    async def _listen_for_changes(self) -> None:
        """Re-hydrate whenever another context rewrites the envelope."""
        if self._durable is None:
            return
        try:
            async for change in self._durable.changes():
                if change.key != self._storage_key or change.value is None:
                    continue
                if self._memory_only:
                    break
                await self.hydrate()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Cache change listener stopped: {}", str(e))


async def create_cache(
    durable: DurableStore | None = None,
    config: CacheConfig | None = None,
    encode: Callable[[Any], Any] | None = None,
    decode: Callable[[Any], Any] | None = None,
    clock: Callable[[], float] = time.time,
) -> TieredCache:
    """Create and initialize a tiered cache.

    Args:
        durable: Shared durable store, or None for memory-only.
        config: Cache settings; defaults apply when omitted.
        encode: Converts values to JSON-compatible data.
        decode: Inverse of ``encode``.
        clock: Wall-clock source in epoch seconds.

    Returns:
        A hydrated cache subscribed to durable changes.
    """
    config = config or CacheConfig()
    cache = TieredCache(
        durable=durable,
        ttl_seconds=config.ttl_seconds,
        debounce_seconds=config.debounce_seconds,
        max_entries=int(config.max_entries),
        storage_key=config.storage_key,
        version=config.version,
        encode=encode,
        decode=decode,
        clock=clock,
    )
    await cache.init()
    return cache

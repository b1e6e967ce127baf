import asyncio
import functools
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from pydantic import ValidationError

from common.core.otel_axiom_exporter import get_logger
from common.providers.storage.interface import KeyValueStorageInterface
from .models import CachedData

logger = get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadThroughCache:
    """
    Read-through cache over a key-value storage.

    Entries are stored as serialized CachedData envelopes. Expiry is checked
    lazily on read; stale entries stay in storage until overwritten or
    invalidated. Concurrent get_or_fetch calls for the same key share a
    single in-flight fetch.

    The storage passed in is owned by this cache: clear() clears it.
    """

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        clock: Optional[Callable[[], datetime]] = None,
        key_prefix: str = "cache:",
    ):
        self._storage = storage
        self._clock = clock or _utcnow
        self._key_prefix = key_prefix
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}
        # Bumped by put/invalidate so a fetch that started earlier does not
        # overwrite a newer value when it completes.
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    def _storage_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _generation(self, key: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def _bump_generation(self, key: str) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

    async def get(self, key: str, value_type: Any) -> Optional[CachedData]:
        """
        Get the cached envelope for a key, fresh or not.

        Args:
            key: The cache key
            value_type: Type of the cached value (model class or List[Model])

        Returns:
            The CachedData envelope, or None if absent or unreadable
        """
        raw = await self._storage.get_string(self._storage_key(key))
        if raw is None:
            return None

        try:
            return CachedData[value_type].model_validate_json(raw)
        except ValidationError as e:
            # Corrupt or outdated envelope - behave as a miss
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    async def put(self, key: str, value: T, ttl_seconds: float, value_type: Any) -> None:
        """
        Store a value with a fresh capture timestamp. Later callers read it
        instead of joining a fetch that started before the write.
        """
        self._bump_generation(key)
        self._inflight.pop(key, None)
        await self._store(key, value, ttl_seconds, value_type)

    async def invalidate(self, key: str) -> None:
        """
        Drop a key. Callers already waiting on an in-flight fetch still get
        its result, but later callers start a new fetch.
        """
        self._bump_generation(key)
        self._inflight.pop(key, None)
        await self._storage.remove(self._storage_key(key))
        logger.debug(f"Invalidated cache key {key}")

    async def clear(self) -> None:
        """Drop every cached entry."""
        self._epoch += 1
        self._generations.clear()
        self._inflight.clear()
        await self._storage.clear()
        logger.info("Cleared read-through cache")

    async def get_or_fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        value_type: Any,
    ) -> T:
        """
        Return the fresh cached value for key, or fetch, store and return it.

        Args:
            key: The cache key
            ttl_seconds: Time to live for a newly fetched value
            fetch_fn: Zero-argument coroutine function producing the value
            value_type: Type of the value, used to decode stored entries

        Returns:
            The cached or freshly fetched value
        """
        inflight = self._inflight.get(key)
        if inflight is None:
            entry = await self.get(key, value_type)
            if entry is not None and entry.is_fresh(self._clock()):
                logger.debug(f"Cache hit for key: {key}")
                return entry.value

            # Another caller may have started a fetch while storage was read
            inflight = self._inflight.get(key)
            if inflight is None:
                logger.debug(f"Cache miss for key: {key}")
                inflight = self._start_fetch(key, ttl_seconds, fetch_fn, value_type)

        # Shielded so an abandoning caller does not cancel the shared fetch
        return await asyncio.shield(inflight)

    def _start_fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        value_type: Any,
    ) -> "asyncio.Task[T]":
        task = asyncio.create_task(
            self._fetch_and_store(
                key, ttl_seconds, fetch_fn, value_type, self._generation(key)
            )
        )
        self._inflight[key] = task
        task.add_done_callback(functools.partial(self._on_fetch_done, key))
        return task

    def _on_fetch_done(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away
            task.exception()

    async def _fetch_and_store(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        value_type: Any,
        generation: Tuple[int, int],
    ) -> T:
        value = await fetch_fn()

        if self._generation(key) == generation:
            await self._store(key, value, ttl_seconds, value_type)
        else:
            logger.debug(f"Skipping store for {key}: superseded during fetch")
        return value

    async def _store(self, key: str, value: Any, ttl_seconds: float, value_type: Any) -> None:
        entry = CachedData[value_type](
            value=value, captured_at=self._clock(), ttl_seconds=ttl_seconds
        )
        await self._storage.set_string(self._storage_key(key), entry.model_dump_json())
        logger.debug(f"Cached key {key} with TTL {ttl_seconds}")

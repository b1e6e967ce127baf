from typing import List, Optional
import redis.asyncio as redis

from common.core.config import settings
from common.core.exceptions import StorageError
from .interface import KeyValueStorageInterface
from common.core.otel_axiom_exporter import get_logger, trace_span

logger = get_logger(__name__)


class RedisStorage(KeyValueStorageInterface):
    """Redis-based durable storage implementation."""

    def __init__(self, key_prefix: Optional[str] = None):
        self.host = settings.redis_host
        self.port = settings.redis_port
        self.password = settings.redis_password
        self.db = settings.redis_db
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._key_prefix = (
            key_prefix if key_prefix is not None else settings.storage_key_prefix
        )

    @trace_span
    async def connect(self) -> None:
        """Connect to Redis."""
        try:
            self._client = redis.Redis(
                host=self.host,
                port=self.port,
                password=self.password,
                db=self.db,
                decode_responses=True,
            )
            # Test connection
            await self._client.ping()
            self._connected = True
            logger.info("Redis storage provider connected")
        except redis.RedisError as e:
            self._connected = False
            logger.error(f"Failed to connect to Redis storage: {e}")
            raise StorageError(f"Failed to connect to Redis: {e}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis storage provider disconnected")

    async def _ensure_connected(self) -> None:
        """Ensure Redis connection is active."""
        if self._connected:
            return  # Short circuit - already connected
        await self.connect()

    def _get_storage_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    @trace_span
    async def get_string(self, key: str) -> Optional[str]:
        await self._ensure_connected()

        try:
            return await self._client.get(self._get_storage_key(key))
        except redis.RedisError as e:
            logger.error(f"Error reading storage key {key}: {e}")
            raise StorageError(f"Failed to read key {key}") from e

    @trace_span
    async def set_string(self, key: str, value: str) -> None:
        await self._ensure_connected()

        try:
            await self._client.set(self._get_storage_key(key), value)
            logger.debug(f"Stored key {key}")
        except redis.RedisError as e:
            logger.error(f"Error writing storage key {key}: {e}")
            raise StorageError(f"Failed to write key {key}") from e

    @trace_span
    async def remove(self, key: str) -> None:
        await self._ensure_connected()

        try:
            await self._client.delete(self._get_storage_key(key))
        except redis.RedisError as e:
            logger.error(f"Error removing storage key {key}: {e}")
            raise StorageError(f"Failed to remove key {key}") from e

    @trace_span
    async def contains_key(self, key: str) -> bool:
        await self._ensure_connected()

        try:
            return bool(await self._client.exists(self._get_storage_key(key)))
        except redis.RedisError as e:
            logger.error(f"Error checking storage key {key}: {e}")
            raise StorageError(f"Failed to check key {key}") from e

    @trace_span
    async def clear(self) -> None:
        """Delete only keys under this storage's prefix, never the whole db."""
        await self._ensure_connected()

        try:
            batch: List[str] = []
            deleted_count = 0
            async for key in self._client.scan_iter(match=f"{self._key_prefix}*"):
                batch.append(key)
                if len(batch) >= 500:
                    deleted_count += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted_count += await self._client.delete(*batch)

            logger.info(
                f"Cleared {deleted_count} storage keys with prefix {self._key_prefix}"
            )
        except redis.RedisError as e:
            logger.error(f"Error clearing storage: {e}")
            raise StorageError("Failed to clear storage") from e

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import redis.asyncio as redis

from common.core.constants import StorageBackend
from common.core.exceptions import StorageError
from common.providers.storage import (
    EncryptedStorage,
    MemoryStorage,
    RedisStorage,
    get_storage,
)


async def _scan(keys):
    for key in keys:
        yield key


class TestMemoryStorage:
    """Unit tests for the volatile storage backend."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, memory_storage):
        await memory_storage.set_string("a", "1")

        assert await memory_storage.get_string("a") == "1"
        assert await memory_storage.contains_key("a") is True

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, memory_storage):
        assert await memory_storage.get_string("missing") is None
        assert await memory_storage.contains_key("missing") is False

    @pytest.mark.asyncio
    async def test_read_after_overwrite_sees_latest(self, memory_storage):
        await memory_storage.set_string("a", "1")
        await memory_storage.set_string("a", "2")

        assert await memory_storage.get_string("a") == "2"

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, memory_storage):
        await memory_storage.set_string("a", "1")
        await memory_storage.set_string("b", "2")

        await memory_storage.remove("a")
        await memory_storage.remove("never-set")
        assert await memory_storage.contains_key("a") is False

        await memory_storage.clear()
        assert await memory_storage.get_string("b") is None


class TestEncryptedStorage:
    """Unit tests for the encrypting storage decorator."""

    @pytest.mark.asyncio
    async def test_values_are_encrypted_at_rest(self):
        inner = MemoryStorage()
        storage = EncryptedStorage(inner, "test-encryption-key")

        await storage.set_string("customer", '{"email": "jane@example.com"}')

        raw = await inner.get_string("customer")
        assert raw is not None
        assert "jane@example.com" not in raw
        assert await storage.get_string("customer") == '{"email": "jane@example.com"}'

    @pytest.mark.asyncio
    async def test_wrong_key_raises_storage_error(self):
        inner = MemoryStorage()
        await EncryptedStorage(inner, "key-one").set_string("a", "secret")

        with pytest.raises(StorageError):
            await EncryptedStorage(inner, "key-two").get_string("a")

    @pytest.mark.asyncio
    async def test_missing_key_passes_through(self):
        storage = EncryptedStorage(MemoryStorage(), "key")

        assert await storage.get_string("missing") is None
        assert await storage.contains_key("missing") is False

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            EncryptedStorage(MemoryStorage(), "")


class TestRedisStorage:
    """Unit tests for the Redis storage backend."""

    @pytest.fixture
    def redis_storage(self):
        with patch("common.providers.storage.redis_storage.settings") as mock_settings:
            mock_settings.redis_host = "localhost"
            mock_settings.redis_port = 6379
            mock_settings.redis_password = None
            mock_settings.redis_db = 0
            mock_settings.storage_key_prefix = "payments:"
            return RedisStorage()

    @pytest.fixture
    def mock_redis_client(self):
        return AsyncMock(spec=redis.Redis)

    @pytest.fixture
    def connected_storage(self, redis_storage, mock_redis_client):
        redis_storage._client = mock_redis_client
        redis_storage._connected = True
        return redis_storage

    async def test_get_uses_prefixed_key(self, connected_storage, mock_redis_client):
        """Test that reads are namespaced by the storage prefix."""
        mock_redis_client.get = AsyncMock(return_value="value")

        result = await connected_storage.get_string("stripe:customer:cus_1")

        assert result == "value"
        mock_redis_client.get.assert_called_once_with("payments:stripe:customer:cus_1")

    async def test_set_and_remove(self, connected_storage, mock_redis_client):
        mock_redis_client.set = AsyncMock(return_value=True)
        mock_redis_client.delete = AsyncMock(return_value=1)

        await connected_storage.set_string("k", "v")
        await connected_storage.remove("k")

        mock_redis_client.set.assert_called_once_with("payments:k", "v")
        mock_redis_client.delete.assert_called_once_with("payments:k")

    async def test_contains_key(self, connected_storage, mock_redis_client):
        mock_redis_client.exists = AsyncMock(return_value=1)

        assert await connected_storage.contains_key("k") is True

    async def test_redis_error_becomes_storage_error(self, connected_storage, mock_redis_client):
        """Test that medium failures surface as StorageError with the cause chained."""
        mock_redis_client.get = AsyncMock(side_effect=redis.ConnectionError("down"))

        with pytest.raises(StorageError) as exc_info:
            await connected_storage.get_string("k")

        assert isinstance(exc_info.value.__cause__, redis.ConnectionError)

    async def test_clear_only_deletes_prefixed_keys(self, connected_storage, mock_redis_client):
        mock_redis_client.scan_iter = MagicMock(
            return_value=_scan(["payments:a", "payments:b"])
        )
        mock_redis_client.delete = AsyncMock(return_value=2)

        await connected_storage.clear()

        mock_redis_client.scan_iter.assert_called_once_with(match="payments:*")
        mock_redis_client.delete.assert_called_once_with("payments:a", "payments:b")

    async def test_connect_failure_raises_storage_error(self, redis_storage):
        client = AsyncMock(spec=redis.Redis)
        client.ping = AsyncMock(side_effect=redis.ConnectionError("refused"))

        with patch(
            "common.providers.storage.redis_storage.redis.Redis", return_value=client
        ):
            with pytest.raises(StorageError):
                await redis_storage.get_string("k")

        assert redis_storage._connected is False


class TestStorageFactory:
    """Unit tests for get_storage."""

    def test_memory_backend(self):
        with patch("common.providers.storage.factory.settings") as mock_settings:
            mock_settings.storage_backend = StorageBackend.MEMORY
            mock_settings.storage_encryption_key = None

            assert isinstance(get_storage(), MemoryStorage)

    def test_redis_backend(self):
        with patch("common.providers.storage.factory.settings") as mock_settings:
            mock_settings.storage_backend = StorageBackend.REDIS
            mock_settings.storage_encryption_key = None

            assert isinstance(get_storage(), RedisStorage)

    def test_encryption_key_wraps_backend(self):
        with patch("common.providers.storage.factory.settings") as mock_settings:
            mock_settings.storage_backend = StorageBackend.MEMORY
            mock_settings.storage_encryption_key = "secret"

            assert isinstance(get_storage(), EncryptedStorage)

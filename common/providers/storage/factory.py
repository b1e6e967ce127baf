from common.core.config import settings
from common.core.constants import StorageBackend
from .interface import KeyValueStorageInterface
from .memory_storage import MemoryStorage
from .redis_storage import RedisStorage
from .encrypted_storage import EncryptedStorage


def get_storage() -> KeyValueStorageInterface:
    """Get a storage instance based on configuration."""
    if settings.storage_backend == StorageBackend.MEMORY:
        storage: KeyValueStorageInterface = MemoryStorage()
    elif settings.storage_backend == StorageBackend.REDIS:
        storage = RedisStorage()
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")

    if settings.storage_encryption_key:
        return EncryptedStorage(storage, settings.storage_encryption_key)
    return storage

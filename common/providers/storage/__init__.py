from .interface import KeyValueStorageInterface
from .factory import get_storage
from .memory_storage import MemoryStorage
from .redis_storage import RedisStorage
from .encrypted_storage import EncryptedStorage

__all__ = [
    "KeyValueStorageInterface",
    "get_storage",
    "MemoryStorage",
    "RedisStorage",
    "EncryptedStorage",
]

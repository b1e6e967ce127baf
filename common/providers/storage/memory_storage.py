from typing import Dict, Optional

from .interface import KeyValueStorageInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


class MemoryStorage(KeyValueStorageInterface):
    """Volatile in-memory storage implementation."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        logger.info("Memory storage provider initialized")

    async def get_string(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_string(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def contains_key(self, key: str) -> bool:
        return key in self._data

    async def clear(self) -> None:
        self._data.clear()
        logger.info("Cleared all memory storage data")

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStorageInterface(ABC):
    """
    Minimal async key-value contract used by caching and persistence.

    Implementations raise StorageError on any failure of the underlying
    medium. Accesses to the same key are sequentially consistent.
    """

    @abstractmethod
    async def get_string(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: The storage key

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set_string(self, key: str, value: str) -> None:
        """
        Write a value, replacing any existing one.

        Args:
            key: The storage key
            value: The string to store
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """
        Remove a key. Removing an absent key is not an error.

        Args:
            key: The storage key
        """
        pass

    @abstractmethod
    async def contains_key(self, key: str) -> bool:
        """
        Check if a key exists.

        Args:
            key: The storage key

        Returns:
            True if the key exists, False otherwise
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key owned by this storage."""
        pass

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from common.core.exceptions import StorageError
from .interface import KeyValueStorageInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


def _derive_key(key: str) -> bytes:
    """Derive a Fernet-compatible key from an arbitrary secret string."""
    key_bytes = hashlib.sha256(key.encode()).digest()
    return base64.urlsafe_b64encode(key_bytes)


class EncryptedStorage(KeyValueStorageInterface):
    """
    Storage decorator that encrypts values at rest.

    Keys are stored as-is so lookups stay cheap; values are Fernet tokens
    (AES-128-CBC + HMAC-SHA256).
    """

    def __init__(self, inner: KeyValueStorageInterface, encryption_key: str):
        if not encryption_key:
            raise ValueError("Encryption key is required for encrypted storage")
        self._inner = inner
        self._fernet = Fernet(_derive_key(encryption_key))
        logger.info(
            f"Encrypted storage initialized over {inner.__class__.__name__}"
        )

    async def get_string(self, key: str) -> Optional[str]:
        ciphertext = await self._inner.get_string(key)
        if ciphertext is None:
            return None

        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            logger.error(f"Failed to decrypt storage key {key}")
            raise StorageError(f"Stored value for {key} could not be decrypted") from e

    async def set_string(self, key: str, value: str) -> None:
        ciphertext = self._fernet.encrypt(value.encode()).decode()
        await self._inner.set_string(key, ciphertext)

    async def remove(self, key: str) -> None:
        await self._inner.remove(key)

    async def contains_key(self, key: str) -> bool:
        return await self._inner.contains_key(key)

    async def clear(self) -> None:
        await self._inner.clear()

"""
Token storage with optional authenticated encryption.

Token data is serialized to JSON, optionally encrypted with AES-256-GCM and
written to a pluggable sink. The encrypted wire format is::

    <ivHex>:<authTagHex>:<ciphertextHex>

A payload that does not have this three-part shape, or that fails to
decrypt, is treated as legacy plaintext.
"""

import hashlib
import json
import logging
import os
import secrets
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "brale_token"
IV_LENGTH = 12
TAG_LENGTH = 16


class TokenCipher:
    """Encrypt and decrypt strings with AES-256-GCM."""

    def __init__(self, key: Union[str, bytes, None] = None):
        """
        Initialize cipher.

        Args:
            key: 32 raw bytes, a 64-char hex string, or any passphrase
                (hashed with SHA-256). A random key is generated if None.
        """
        self._aesgcm = AESGCM(self._derive_key(key))

    @staticmethod
    def _derive_key(key: Union[str, bytes, None]) -> bytes:
        if key is None:
            return AESGCM.generate_key(bit_length=256)
        if isinstance(key, bytes):
            if len(key) == 32:
                return key
            return hashlib.sha256(key).digest()
        if len(key) == 64:
            try:
                return bytes.fromhex(key)
            except ValueError:
                pass
        return hashlib.sha256(key.encode("utf-8")).digest()

    @staticmethod
    def generate_key() -> str:
        """Generate a random key as 64 hex characters."""
        return secrets.token_hex(32)

    @staticmethod
    def looks_encrypted(payload: str) -> bool:
        """Check the ``iv:tag:ciphertext`` shape without decrypting."""
        parts = payload.split(":")
        if len(parts) != 3:
            return False
        iv_hex, tag_hex, ciphertext_hex = parts
        if len(iv_hex) != IV_LENGTH * 2 or len(tag_hex) != TAG_LENGTH * 2:
            return False
        try:
            for part in parts:
                bytes.fromhex(part)
        except ValueError:
            return False
        return bool(ciphertext_hex)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext with a fresh random IV."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, payload: str) -> str:
        """
        Decrypt a payload produced by encrypt().

        Raises:
            ValueError: If the payload is malformed or fails authentication
        """
        if not self.looks_encrypted(payload):
            raise ValueError("Invalid encrypted data format")

        iv_hex, tag_hex, ciphertext_hex = payload.split(":")
        sealed = bytes.fromhex(ciphertext_hex) + bytes.fromhex(tag_hex)
        try:
            plaintext = self._aesgcm.decrypt(bytes.fromhex(iv_hex), sealed, None)
        except InvalidTag as exc:
            raise ValueError(
                "Failed to decrypt token; authentication tag mismatch."
            ) from exc
        return plaintext.decode("utf-8")


# ================================================================
# Sinks
# ================================================================


class TokenSink(Protocol):
    """Where serialized token payloads live."""

    def read(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, payload: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryTokenSink:
    """Process-scoped sink; contents vanish when the process exits."""

    def __init__(self) -> None:
        self._payloads: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._payloads.get(key)

    def write(self, key: str, payload: str) -> None:
        self._payloads[key] = payload

    def delete(self, key: str) -> None:
        self._payloads.pop(key, None)


class FileTokenSink:
    """
    Session-file sink: one file per storage key inside a directory.

    Files are created readable by the owner only.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.token"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ================================================================
# Storage
# ================================================================


class SecureTokenStorage:
    """
    Token storage with optional encryption.

    The instance is constructed and owned by the client that uses it; there
    is no module-level default.

    Example:
        storage = SecureTokenStorage(InMemoryTokenSink(), encryption_key=key)
        await storage.store_token({
            "access_token": "abc",
            "token_type": "Bearer",
            "expires_at": time.time() + 3600,
        })
        data = await storage.retrieve_token()
    """

    def __init__(
        self,
        sink: Optional[TokenSink] = None,
        encrypt: bool = True,
        encryption_key: Union[str, bytes, None] = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize storage.

        Args:
            sink: Destination for payloads (in-memory if None)
            encrypt: Encrypt payloads before writing
            encryption_key: Key material for TokenCipher (random if None)
            storage_key: Key under which the payload is written
            clock: Unix time source used for expiry checks
        """
        self.sink: TokenSink = sink if sink is not None else InMemoryTokenSink()
        self.encrypt = encrypt
        self.storage_key = storage_key
        self._cipher = TokenCipher(encryption_key)
        self._clock = clock

    async def store_token(self, token_data: Dict[str, Any]) -> None:
        """
        Store token data, encrypting if enabled.

        Args:
            token_data: JSON-serializable dict; ``expires_at`` (unix seconds)
                enables expiry on retrieval
        """
        data = {**token_data, "encrypted": self.encrypt}
        serialized = json.dumps(data)

        if self.encrypt:
            serialized = self._cipher.encrypt(serialized)

        self.sink.write(self.storage_key, serialized)

    async def retrieve_token(self) -> Optional[Dict[str, Any]]:
        """
        Retrieve stored token data.

        A record that cannot be read, parsed or dated is discarded so the
        next store_token() starts clean.

        Returns:
            The dict given to store_token, or None if absent, unreadable or
            expired
        """
        try:
            serialized = self.sink.read(self.storage_key)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read stored token under '{self.storage_key}': {e}")
            self._discard()
            return None

        if not serialized:
            return None

        decrypted = serialized
        if TokenCipher.looks_encrypted(serialized):
            try:
                decrypted = self._cipher.decrypt(serialized)
            except ValueError:
                logger.warning("Failed to decrypt token, treating as unencrypted")

        try:
            data = json.loads(decrypted)
        except ValueError:
            logger.error(f"Failed to parse stored token under '{self.storage_key}'")
            self._discard()
            return None

        if not isinstance(data, dict):
            logger.error(f"Stored token under '{self.storage_key}' is not an object")
            self._discard()
            return None

        expires_at = data.get("expires_at")
        if expires_at:
            try:
                expired = self._clock() > float(expires_at)
            except (TypeError, ValueError):
                logger.error(
                    f"Stored token under '{self.storage_key}' has invalid "
                    f"expires_at: {expires_at!r}"
                )
                self._discard()
                return None
            if expired:
                await self.clear_token()
                return None

        data.pop("encrypted", None)
        return data

    def _discard(self) -> None:
        try:
            self.sink.delete(self.storage_key)
        except OSError as e:
            logger.error(f"Failed to delete stored token under '{self.storage_key}': {e}")

    async def clear_token(self) -> None:
        self.sink.delete(self.storage_key)

    async def has_valid_token(self) -> bool:
        """Check if a token is stored and not expired."""
        return await self.retrieve_token() is not None


__all__ = [
    "FileTokenSink",
    "InMemoryTokenSink",
    "SecureTokenStorage",
    "TokenCipher",
    "TokenSink",
]

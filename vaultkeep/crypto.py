"""
Key derivation and authenticated encryption for Vaultkeep.

A ``CryptoContext`` derives a 256-bit key from a password and a random salt
with Argon2id, then seals data with AES-256-GCM. Only the salt and nonce are
ever exported; the key is re-derived from the password when the context is
imported again.

Sealed blob layout (``seal_stream``)::

    nonce      : 12 bytes (fresh per stream)
    ciphertext : len(plaintext) bytes
    tag        : 16 bytes
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional, Union

from argon2.low_level import Type as Argon2Type
from argon2.low_level import hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vaultkeep.errors import DecryptionError

logger = logging.getLogger("vaultkeep.crypto")

KEY_SIZE = 32
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
EXPORT_SIZE = SALT_SIZE + NONCE_SIZE

STREAM_CHUNK_SIZE = 1024 * 1024

Password = Union[str, bytes]


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters."""

    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4

    def to_dict(self) -> Dict[str, int]:
        return {
            "time_cost": self.time_cost,
            "memory_cost": self.memory_cost,
            "parallelism": self.parallelism,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KdfParams":
        """
        Build params from a mapping, falling back to defaults per key.

        Raises:
            ValueError: If a value is not a positive integer, or the memory
                cost is below Argon2's minimum for the parallelism
        """
        defaults = cls()
        values = {}
        for name, default in defaults.to_dict().items():
            value = data.get(name, default)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"invalid kdf parameter {name}: {value!r}")
            values[name] = value
        params = cls(**values)
        if not params.is_valid():
            raise ValueError(
                f"kdf memory_cost {params.memory_cost} is below "
                f"8 * parallelism ({params.parallelism})"
            )
        return params

    def is_valid(self) -> bool:
        """Return True when Argon2 accepts this combination of costs."""
        return self.memory_cost >= 8 * self.parallelism


def _to_bytes(password: Password) -> bytes:
    if isinstance(password, bytes):
        return password
    return password.encode("utf-8")


def derive_key(password: Password, salt: bytes, params: KdfParams) -> bytes:
    """Key = Argon2id(password, salt) -> 32 bytes"""
    return hash_secret_raw(
        secret=_to_bytes(password),
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=Argon2Type.ID,
    )


class CryptoContext:
    """A password-derived key bound to a salt and a nonce."""

    def __init__(
        self,
        key: bytes,
        salt: bytes,
        nonce: bytes,
        params: Optional[KdfParams] = None,
    ):
        if len(key) != KEY_SIZE:
            raise ValueError(f"key must be {KEY_SIZE} bytes")
        if len(salt) != SALT_SIZE:
            raise ValueError(f"salt must be {SALT_SIZE} bytes")
        if len(nonce) != NONCE_SIZE:
            raise ValueError(f"nonce must be {NONCE_SIZE} bytes")
        self._key = key
        self.salt = salt
        self.nonce = nonce
        self.params = params or KdfParams()

    def __repr__(self) -> str:
        return f"CryptoContext(salt={self.salt.hex()}, nonce={self.nonce.hex()})"

    @classmethod
    def new(
        cls, password: Password, params: Optional[KdfParams] = None
    ) -> "CryptoContext":
        """
        Create a context with a fresh random salt and nonce.

        Args:
            password: Password the key is derived from
            params: Argon2id cost parameters

        Returns:
            A ready-to-use context
        """
        params = params or KdfParams()
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        logger.debug("Deriving key for a new crypto context")
        return cls(derive_key(password, salt, params), salt, nonce, params)

    @classmethod
    def from_export(
        cls,
        password: Password,
        exported: bytes,
        params: Optional[KdfParams] = None,
    ) -> "CryptoContext":
        """
        Rebuild a context from ``export()`` output and the password.

        The same password and params reproduce the original key. A wrong
        password yields a context whose decryptions fail.

        Args:
            password: Password the original context was created with
            exported: ``salt || nonce`` as returned by ``export()``
            params: Argon2id parameters used by the original context

        Returns:
            The re-derived context
        """
        if len(exported) != EXPORT_SIZE:
            raise ValueError(
                f"exported context must be {EXPORT_SIZE} bytes, got {len(exported)}"
            )
        params = params or KdfParams()
        salt, nonce = exported[:SALT_SIZE], exported[SALT_SIZE:]
        return cls(derive_key(password, salt, params), salt, nonce, params)

    def export(self) -> bytes:
        """Return ``salt || nonce``. The key is never exported."""
        return self.salt + self.nonce

    def with_nonce(self, nonce: bytes) -> "CryptoContext":
        """Return a context sharing this key and salt but using *nonce*."""
        return CryptoContext(self._key, self.salt, nonce, self.params)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Seal *plaintext* under the context nonce; returns ciphertext || tag."""
        return AESGCM(self._key).encrypt(self.nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """
        Open and authenticate *ciphertext*.

        Raises:
            DecryptionError: If the tag does not verify
        """
        try:
            return AESGCM(self._key).decrypt(self.nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("authentication tag mismatch") from e

    def seal_stream(
        self, src: BinaryIO, dst: BinaryIO, chunk_size: int = STREAM_CHUNK_SIZE
    ) -> int:
        """
        Encrypt *src* into *dst* under a fresh random nonce.

        Writes ``nonce || ciphertext || tag``; the output is also readable by
        ``with_nonce(nonce).decrypt(...)``.

        Returns:
            Number of plaintext bytes consumed
        """
        nonce = os.urandom(NONCE_SIZE)
        encryptor = Cipher(algorithms.AES(self._key), modes.GCM(nonce)).encryptor()
        dst.write(nonce)
        total = 0
        while True:
            chunk = src.read(chunk_size)
            if not chunk:
                break
            total += len(chunk)
            dst.write(encryptor.update(chunk))
        dst.write(encryptor.finalize())
        dst.write(encryptor.tag)
        return total

    def open_stream(
        self, src: BinaryIO, dst: BinaryIO, chunk_size: int = STREAM_CHUNK_SIZE
    ) -> int:
        """
        Decrypt a ``seal_stream`` output from seekable *src* into *dst*.

        Plaintext is written before the tag is checked, so *dst* must be a
        scratch file that the caller discards when this raises.

        Returns:
            Number of plaintext bytes written

        Raises:
            DecryptionError: If the stream is truncated or fails authentication
        """
        src.seek(0, os.SEEK_END)
        size = src.tell()
        if size < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("sealed stream is truncated")
        src.seek(size - TAG_SIZE)
        tag = src.read(TAG_SIZE)
        src.seek(0)
        nonce = src.read(NONCE_SIZE)

        decryptor = Cipher(
            algorithms.AES(self._key), modes.GCM(nonce, tag)
        ).decryptor()
        remaining = size - NONCE_SIZE - TAG_SIZE
        total = 0
        while remaining > 0:
            chunk = src.read(min(chunk_size, remaining))
            if not chunk:
                raise DecryptionError("sealed stream is truncated")
            remaining -= len(chunk)
            total += len(chunk)
            dst.write(decryptor.update(chunk))
        try:
            dst.write(decryptor.finalize())
        except InvalidTag as e:
            raise DecryptionError("authentication tag mismatch") from e
        return total

"""
Password authentication for Vaultkeep.

A vault's ``vault_config.json`` holds a single Argon2id password hash. The
password itself is never written anywhere; ``verify_password`` checks a
candidate against the hash with argon2's own verification routine.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import orjson
from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from vaultkeep.crypto import KdfParams
from vaultkeep.errors import VaultCreationError, VaultReadError, VaultWrongPassword

logger = logging.getLogger("vaultkeep.auth")

CONFIG_FILE = "vault_config.json"


@dataclass(frozen=True)
class VaultConfig:
    """Persisted vault configuration: the password hash and nothing else."""

    password_hash: str

    def to_bytes(self) -> bytes:
        return orjson.dumps({"password_hash": self.password_hash})

    @classmethod
    def from_bytes(cls, raw: bytes) -> "VaultConfig":
        data = orjson.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("password_hash"), str):
            raise ValueError("config must be an object with a password_hash string")
        return cls(password_hash=data["password_hash"])


def _hasher(params: Optional[KdfParams] = None) -> PasswordHasher:
    params = params or KdfParams()
    return PasswordHasher(
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
    )


def hash_password(password: str, params: Optional[KdfParams] = None) -> str:
    """Return a salted Argon2id hash of *password* in encoded form."""
    return _hasher(params).hash(password)


def write_config(
    vault_path: Path, password: str, params: Optional[KdfParams] = None
) -> VaultConfig:
    """
    Hash *password* and write it as the vault's config.

    The file is created exclusively; an existing config is never replaced.

    Raises:
        VaultCreationError: If the config cannot be serialized or written
    """
    path = vault_path / CONFIG_FILE
    try:
        config = VaultConfig(password_hash=hash_password(password, params))
        data = config.to_bytes()
        with open(path, "xb") as f:
            f.write(data)
    except HashingError as e:
        raise VaultCreationError(f"Failed to hash password: {e}") from e
    except (OSError, TypeError, orjson.JSONEncodeError) as e:
        raise VaultCreationError(f"Failed to write config {path}: {e}") from e
    logger.debug(f"Wrote vault config to {path}")
    return config


def read_config(vault_path: Path) -> VaultConfig:
    """
    Load the vault's config.

    Raises:
        VaultReadError: If the config is missing, unreadable or malformed
    """
    path = vault_path / CONFIG_FILE
    try:
        return VaultConfig.from_bytes(path.read_bytes())
    except OSError as e:
        raise VaultReadError(f"Failed to read config {path}: {e}") from e
    except (orjson.JSONDecodeError, ValueError) as e:
        raise VaultReadError(f"Malformed config {path}: {e}") from e


def verify_password(config: VaultConfig, password: str) -> None:
    """
    Check *password* against the stored hash.

    Raises:
        VaultWrongPassword: If the password does not match
        VaultReadError: If the stored hash is not a valid Argon2 hash
    """
    try:
        PasswordHasher().verify(config.password_hash, password)
    except VerifyMismatchError as e:
        raise VaultWrongPassword("Wrong password") from e
    except (InvalidHashError, VerificationError) as e:
        raise VaultReadError(f"Stored password hash is unusable: {e}") from e

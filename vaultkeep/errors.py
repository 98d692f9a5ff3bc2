"""
Exception types raised by the vault engine.
"""

from pathlib import Path
from typing import Union


class VaultError(Exception):
    """Base exception for all vault errors"""

    pass


class VaultDoesNotExist(VaultError):
    """The vault path is missing or is not a directory"""

    pass


class VaultCreationError(VaultError):
    """The vault directory or its config could not be created"""

    pass


class VaultReadError(VaultError):
    """The config or manifest file is missing, unreadable or malformed"""

    pass


class VaultWrongPassword(VaultError):
    """The supplied password does not match the stored hash"""

    pass


class VaultLockedError(VaultError):
    """Another process holds the vault's advisory lock"""

    pass


class ManifestWriteError(VaultError):
    """The manifest could not be encoded or durably written"""

    pass


class SnapshotNotFound(VaultError):
    """No snapshot with the requested id exists"""

    pass


class NoSnapshots(VaultError):
    """The vault history is empty"""

    pass


class RestoreError(VaultError):
    """A snapshot entry could not be reconstructed"""

    pass


class DecryptionError(VaultError):
    """Authenticated decryption failed (wrong key, wrong nonce or tampered data)"""

    pass


class VaultFileError(VaultError):
    """Base exception for per-file I/O errors during backup"""

    kind = "file"

    def __init__(self, path: Union[str, Path], message: str):
        super().__init__(f"{path}: {message}")
        self.path = Path(path)
        self.message = message


class FileOpenError(VaultFileError):
    """The source file could not be opened"""

    kind = "open"


class FileReadError(VaultFileError):
    """The source file could not be read"""

    kind = "read"


class FileCopyError(VaultFileError):
    """The content could not be written into the vault"""

    kind = "copy"

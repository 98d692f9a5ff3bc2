"""
Content-addressed blob store for Vaultkeep.

Every distinct file content is stored exactly once, under a name derived
from its full SHA-256 digest::

    blobs/<h[0:2]>/<h[2:4]>/<h>

The content index (hash -> ``VaultFile``) spans the vault's whole history, so
a content seen by any earlier backup is never copied again.
"""

import hashlib
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Tuple, Union

from vaultkeep.crypto import CryptoContext
from vaultkeep.engine import VaultFile
from vaultkeep.errors import FileCopyError, FileOpenError, FileReadError

logger = logging.getLogger("vaultkeep.store")

BLOB_DIR = "blobs"
READ_BUFFER_SIZE = 1024 * 1024


def blob_path_for(content_hash: str) -> str:
    """Return the vault-relative blob path for *content_hash*."""
    return f"{BLOB_DIR}/{content_hash[0:2]}/{content_hash[2:4]}/{content_hash}"


class _HashingReader:
    """File wrapper that digests everything read through it."""

    def __init__(self, fileobj: BinaryIO, path: Path):
        self._fileobj = fileobj
        self._path = path
        self._digest = hashlib.sha256()

    def read(self, size: int = -1) -> bytes:
        try:
            chunk = self._fileobj.read(size)
        except OSError as e:
            raise FileReadError(self._path, str(e)) from e
        self._digest.update(chunk)
        return chunk

    def hexdigest(self) -> str:
        return self._digest.hexdigest()


class ContentStore:
    """Deduplicating writer of vault blobs."""

    def __init__(
        self,
        root: Path,
        content_index: Dict[str, VaultFile],
        crypto: Optional[CryptoContext] = None,
        buffer_size: int = READ_BUFFER_SIZE,
        log: Optional[logging.Logger] = None,
    ):
        """
        Initialize the store.

        Args:
            root: Vault directory; blob paths are relative to it
            content_index: Persistent hash -> VaultFile mapping, updated in place
            crypto: Context used to seal blobs at rest, or None for plaintext
            buffer_size: Read buffer size for hashing and copying
            log: Logger to use instead of the module logger
        """
        self.root = root
        self.content_index = content_index
        self.crypto = crypto
        self.buffer_size = buffer_size
        self.log = log or logger

        self._index_lock = threading.Lock()
        self._hash_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, content_hash: str) -> threading.Lock:
        with self._index_lock:
            lock = self._hash_locks.get(content_hash)
            if lock is None:
                lock = self._hash_locks[content_hash] = threading.Lock()
            return lock

    def lookup(self, content_hash: str) -> Optional[VaultFile]:
        """Return the indexed entry for *content_hash*, if any."""
        with self._index_lock:
            return self.content_index.get(content_hash)

    def hash_file(self, file_path: Path) -> Tuple[str, int]:
        """
        Stream *file_path* through SHA-256.

        Returns:
            Tuple of (hex digest, size in bytes)

        Raises:
            FileOpenError: If the file cannot be opened
            FileReadError: If reading fails part-way
        """
        try:
            f = open(file_path, "rb")
        except OSError as e:
            raise FileOpenError(file_path, str(e)) from e

        with f:
            digest = hashlib.sha256()
            size = 0
            while True:
                try:
                    chunk = f.read(self.buffer_size)
                except OSError as e:
                    raise FileReadError(file_path, str(e)) from e
                if not chunk:
                    break
                digest.update(chunk)
                size += len(chunk)
        return digest.hexdigest(), size

    def add(
        self, file_path: Union[str, Path], relative_path: Optional[str] = None
    ) -> VaultFile:
        """
        Resolve *file_path* to a ``VaultFile``, copying its bytes only if the
        content has never been stored before.

        Args:
            file_path: Source file
            relative_path: Path to restore the file under; defaults to its name

        Returns:
            The entry describing this file

        Raises:
            FileOpenError, FileReadError: On source file errors
            FileCopyError: If the blob cannot be written into the vault
        """
        file_path = Path(file_path).absolute()
        relative_path = relative_path or file_path.name
        for name in (str(file_path), relative_path):
            try:
                name.encode("utf-8")
            except UnicodeEncodeError as e:
                raise FileOpenError(file_path, "file name is not valid UTF-8") from e

        content_hash, size = self.hash_file(file_path)

        with self._lock_for(content_hash):
            existing = self.lookup(content_hash)
            if existing is not None:
                self.log.debug(f"Dedup hit for {file_path} ({content_hash[:12]})")
                stored_paths = existing.stored_paths
            else:
                stored_paths = (self._copy_in(file_path, content_hash),)

            entry = VaultFile(
                file_name=file_path.name,
                relative_path=relative_path,
                content_hash=content_hash,
                source_path=str(file_path),
                size_bytes=size,
                stored_paths=stored_paths,
            )
            if existing is None:
                with self._index_lock:
                    self.content_index[content_hash] = entry
        return entry

    def _copy_in(self, file_path: Path, content_hash: str) -> str:
        """Write the blob for *content_hash*; returns its vault-relative path."""
        relative = blob_path_for(content_hash)
        dest = self.root / relative

        try:
            src = open(file_path, "rb")
        except OSError as e:
            raise FileOpenError(file_path, str(e)) from e

        with src:
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=dest.parent)
            except OSError as e:
                raise FileCopyError(file_path, str(e)) from e

            tmp = Path(tmp_name)
            reader = _HashingReader(src, file_path)
            try:
                with os.fdopen(fd, "wb") as out:
                    if self.crypto is not None:
                        self.crypto.seal_stream(reader, out, self.buffer_size)
                    else:
                        shutil.copyfileobj(reader, out, self.buffer_size)
                    out.flush()
                    os.fsync(out.fileno())
                if reader.hexdigest() != content_hash:
                    raise FileReadError(file_path, "file changed while being stored")
                os.replace(tmp, dest)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise FileCopyError(file_path, str(e)) from e
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise

        self.log.info(f"Stored {file_path} as {relative}")
        return relative

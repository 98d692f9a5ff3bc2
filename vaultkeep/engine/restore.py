"""
Restore engine for Vaultkeep.

Rebuilds each entry of a snapshot under a target directory by concatenating
its blobs. Every file is assembled in a temporary sibling, checked against
its content hash and then renamed into place, so restoring the same snapshot
twice yields identical bytes and an interrupted restore never leaves a
partial file under the final name.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Set

from vaultkeep.crypto import CryptoContext
from vaultkeep.engine import Snapshot, VaultFile
from vaultkeep.engine.store import READ_BUFFER_SIZE
from vaultkeep.errors import RestoreError

logger = logging.getLogger("vaultkeep.restore")


class _HashingWriter:
    """File wrapper that digests everything written through it."""

    def __init__(self, fileobj: BinaryIO):
        self._fileobj = fileobj
        self._digest = hashlib.sha256()
        self.size = 0

    def write(self, data: bytes) -> int:
        self._digest.update(data)
        self.size += len(data)
        return self._fileobj.write(data)

    def hexdigest(self) -> str:
        return self._digest.hexdigest()


def _default_file_mode() -> int:
    """Permissions a plain ``open(path, "wb")`` would give a new file."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _safe_relative(value: str, what: str) -> PurePosixPath:
    """Reject absolute paths and parent references read from the manifest."""
    rel = PurePosixPath(value)
    if not value or rel.is_absolute() or ".." in rel.parts or "\\" in value:
        raise RestoreError(f"Unsafe {what} in manifest: {value!r}")
    return rel


def _restore_entry(
    root: Path,
    entry: VaultFile,
    dest: Path,
    crypto: Optional[CryptoContext],
    buffer_size: int,
    mode: int,
) -> None:
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
    except OSError as e:
        raise RestoreError(f"Cannot create {dest}: {e}") from e

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            writer = _HashingWriter(out)
            for stored in entry.stored_paths:
                blob = root / _safe_relative(stored, "blob path")
                with open(blob, "rb") as src:
                    if crypto is not None:
                        crypto.open_stream(src, writer, buffer_size)
                    else:
                        shutil.copyfileobj(src, writer, buffer_size)
            out.flush()
            os.fsync(out.fileno())

        if writer.size != entry.size_bytes or writer.hexdigest() != entry.content_hash:
            raise RestoreError(
                f"Restored content of {entry.relative_path} does not match its hash"
            )
        os.chmod(tmp, mode)
        os.replace(tmp, dest)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise RestoreError(f"Failed to restore {entry.relative_path}: {e}") from e
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def restore_snapshot(
    root: Path,
    snapshot: Snapshot,
    target_dir: Path,
    crypto: Optional[CryptoContext] = None,
    buffer_size: int = READ_BUFFER_SIZE,
    log: Optional[logging.Logger] = None,
) -> List[Path]:
    """
    Reconstruct every entry of *snapshot* under *target_dir*.

    Args:
        root: Vault directory the blob paths are relative to
        snapshot: Snapshot to restore
        target_dir: Destination directory, created if absent
        crypto: Context that sealed the blobs, or None for plaintext blobs
        buffer_size: Copy buffer size
        log: Logger to use instead of the module logger

    Returns:
        Restored file paths, in snapshot order

    Raises:
        RestoreError: If a blob is missing, corrupt or cannot be written out
        DecryptionError: If a sealed blob fails authentication
    """
    log = log or logger
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RestoreError(f"Cannot create target directory {target_dir}: {e}") from e

    mode = _default_file_mode()
    restored: List[Path] = []
    seen: Set[Path] = set()
    for entry in snapshot.entries:
        dest = target_dir / _safe_relative(entry.relative_path, "relative path")
        if dest in seen:
            log.warning(f"{entry.relative_path} appears twice; later entry wins")
        seen.add(dest)

        _restore_entry(root, entry, dest, crypto, buffer_size, mode)
        log.debug(f"Restored {entry.relative_path} ({entry.size_bytes} bytes)")
        restored.append(dest)

    log.info(
        f"Restored {len(restored)} files from snapshot {snapshot.snapshot_id} "
        f"to {target_dir}"
    )
    return restored

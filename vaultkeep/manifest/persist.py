"""
Atomic persistence of the vault manifest.

The manifest is written to a temporary file in the vault directory, flushed
to disk and renamed over ``vault.json``; a crash at any point leaves the
previous manifest in place.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from vaultkeep.errors import ManifestWriteError, VaultReadError
from vaultkeep.manifest.document import VaultManifest

logger = logging.getLogger("vaultkeep.manifest")

MANIFEST_FILE = "vault.json"


def write_manifest(
    vault_path: Path, manifest: VaultManifest, log: Optional[logging.Logger] = None
) -> Path:
    """
    Atomically replace the manifest inside *vault_path*.

    Returns:
        Path of the written manifest

    Raises:
        ManifestWriteError: If encoding, writing or renaming fails
    """
    log = log or logger
    data = manifest.encode()
    target = vault_path / MANIFEST_FILE

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".vault-", suffix=".tmp", dir=vault_path)
    except OSError as e:
        raise ManifestWriteError(f"Failed to create temporary manifest: {e}") from e

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise ManifestWriteError(f"Failed to write manifest {target}: {e}") from e

    log.debug(
        f"Wrote manifest with {len(manifest.snapshots)} snapshots and "
        f"{len(manifest.content_index)} indexed contents"
    )
    return target


def read_manifest(vault_path: Path) -> VaultManifest:
    """
    Load the manifest inside *vault_path*.

    Raises:
        VaultReadError: If the manifest is missing, unreadable or malformed
    """
    path = vault_path / MANIFEST_FILE
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise VaultReadError(f"Failed to read manifest {path}: {e}") from e
    return VaultManifest.decode(raw)

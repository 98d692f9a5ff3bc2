"""
The vault aggregate for Vaultkeep.

A ``Vault`` binds a vault directory to the password it was opened with, its
append-only snapshot history and its content index. It is the only writer of
the manifest.

Vault layout::

    <vault>/
      vault_config.json   # Argon2id password hash
      vault.json          # manifest: snapshots, content index, no secrets
      .vault.lock         # advisory lock held during backup and restore
      blobs/ab/cd/<hash>  # one blob per distinct content
"""

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from argon2.exceptions import HashingError

from vaultkeep.auth import read_config, verify_password, write_config
from vaultkeep.crypto import CryptoContext, KdfParams
from vaultkeep.engine import BackupResult, Snapshot, VaultFile
from vaultkeep.engine.restore import restore_snapshot
from vaultkeep.engine.snapshot import build_snapshot
from vaultkeep.engine.store import ContentStore
from vaultkeep.errors import (
    ManifestWriteError,
    NoSnapshots,
    SnapshotNotFound,
    VaultCreationError,
    VaultDoesNotExist,
    VaultLockedError,
    VaultReadError,
)
from vaultkeep.manifest import (
    EncryptionInfo,
    VaultManifest,
    read_manifest,
    write_manifest,
)
from vaultkeep.platform import lock_file, unlock_file

logger = logging.getLogger("vaultkeep.vault")

LOCK_FILE = ".vault.lock"


@contextmanager
def vault_lock(vault_path: Path) -> Iterator[None]:
    """
    Hold the vault's exclusive advisory lock for the duration of the block.

    Raises:
        VaultLockedError: If another process holds the lock
    """
    path = vault_path / LOCK_FILE
    try:
        fh = open(path, "a+b")
    except OSError as e:
        raise VaultReadError(f"Cannot open lock file {path}: {e}") from e

    with fh:
        try:
            lock_file(fh)
        except OSError as e:
            raise VaultLockedError(f"Vault {vault_path} is in use") from e
        try:
            yield
        finally:
            unlock_file(fh)


def _discard_partial_vault(
    vault_path: Path, created_dir: bool, log: logging.Logger
) -> None:
    """Remove what a failed ``Vault.create`` left in *vault_path*."""
    # The directory was empty (or absent) before create, so all of it is ours
    if created_dir:
        shutil.rmtree(vault_path, ignore_errors=True)
    else:
        for child in vault_path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)
    log.debug(f"Removed partially created vault at {vault_path}")


class Vault:
    """A backup vault opened with its password."""

    def __init__(
        self,
        location: Path,
        password: str,
        manifest: Optional[VaultManifest] = None,
        crypto: Optional[CryptoContext] = None,
        workers: int = 1,
        log: Optional[logging.Logger] = None,
    ):
        manifest = manifest or VaultManifest()
        self.location = location
        self._password = password
        self.snapshots: List[Snapshot] = list(manifest.snapshots)
        self.content_index: Dict[str, VaultFile] = dict(manifest.content_index)
        self.encryption = manifest.encryption
        self.crypto = crypto
        self.workers = max(1, workers)
        self.log = log or logger

    def __repr__(self) -> str:
        return (
            f"Vault(location={str(self.location)!r}, "
            f"snapshots={len(self.snapshots)}, contents={len(self.content_index)})"
        )

    @classmethod
    def create(
        cls,
        vault_path: Union[str, Path],
        password: str,
        encrypt: bool = True,
        kdf: Optional[KdfParams] = None,
        workers: int = 1,
        log: Optional[logging.Logger] = None,
    ) -> "Vault":
        """
        Create a new, empty vault.

        Args:
            vault_path: Vault directory; must be absent or empty
            password: Vault password; only its hash is stored
            encrypt: Seal blobs at rest with a key derived from the password
            kdf: Argon2id parameters for the password hash and blob key
            workers: Backup thread pool size
            log: Logger to use instead of the module logger

        Returns:
            The new vault

        Raises:
            VaultCreationError: If the directory is not empty or cannot be
                initialized; anything written before the failure is
                removed again
        """
        log = log or logger
        vault_path = Path(vault_path).expanduser()
        kdf = kdf or KdfParams()
        if not kdf.is_valid():
            raise VaultCreationError(
                f"Invalid kdf parameters: memory_cost {kdf.memory_cost} is below "
                f"8 * parallelism ({kdf.parallelism})"
            )

        created_dir = False
        if vault_path.exists():
            if not vault_path.is_dir():
                raise VaultCreationError(f"{vault_path} exists and is not a directory")
            if any(vault_path.iterdir()):
                raise VaultCreationError(f"{vault_path} is not empty")
        else:
            try:
                vault_path.mkdir(parents=True)
            except OSError as e:
                raise VaultCreationError(f"Cannot create {vault_path}: {e}") from e
            created_dir = True

        try:
            write_config(vault_path, password, kdf)

            crypto = None
            encryption = None
            if encrypt:
                try:
                    crypto = CryptoContext.new(password, kdf)
                except HashingError as e:
                    raise VaultCreationError(f"Key derivation failed: {e}") from e
                encryption = EncryptionInfo(exported=crypto.export(), kdf=kdf)

            manifest = VaultManifest(encryption=encryption)
            try:
                write_manifest(vault_path, manifest, log)
            except ManifestWriteError as e:
                raise VaultCreationError(str(e)) from e
        except VaultCreationError:
            _discard_partial_vault(vault_path, created_dir, log)
            raise

        log.info(f"Created vault at {vault_path} (encrypted: {encrypt})")
        return cls(vault_path, password, manifest, crypto, workers, log)

    @classmethod
    def open(
        cls,
        vault_path: Union[str, Path],
        password: str,
        workers: int = 1,
        log: Optional[logging.Logger] = None,
    ) -> "Vault":
        """
        Open an existing vault.

        Raises:
            VaultDoesNotExist: If *vault_path* is missing or not a directory
            VaultReadError: If the config or manifest is missing or malformed
            VaultWrongPassword: If *password* does not match
        """
        log = log or logger
        vault_path = Path(vault_path).expanduser()
        if not vault_path.is_dir():
            raise VaultDoesNotExist(f"No vault at {vault_path}")

        verify_password(read_config(vault_path), password)
        manifest = read_manifest(vault_path)

        crypto = None
        if manifest.encryption is not None:
            try:
                crypto = CryptoContext.from_export(
                    password, manifest.encryption.exported, manifest.encryption.kdf
                )
            except HashingError as e:
                raise VaultReadError(f"Cannot derive the vault key: {e}") from e

        log.debug(
            f"Opened vault at {vault_path} with {len(manifest.snapshots)} snapshots"
        )
        return cls(vault_path, password, manifest, crypto, workers, log)

    def to_manifest(self) -> VaultManifest:
        """Return the persisted form of this vault."""
        return VaultManifest(
            snapshots=list(self.snapshots),
            content_index=dict(self.content_index),
            encryption=self.encryption,
        )

    def backup(self, paths: Iterable[Union[str, Path]]) -> BackupResult:
        """
        Back up *paths* as a new snapshot and persist it.

        The manifest is re-read under the vault lock, so history written by
        another process since ``open`` is kept.

        Returns:
            The new snapshot with per-file failures and skipped inputs

        Raises:
            VaultLockedError: If the vault is in use
            ManifestWriteError: If the snapshot could not be made durable; the
                previous manifest stays authoritative
        """
        with vault_lock(self.location):
            current = read_manifest(self.location)
            self.snapshots = list(current.snapshots)
            self.content_index.update(current.content_index)

            store = ContentStore(
                self.location, self.content_index, self.crypto, log=self.log
            )
            result = build_snapshot(store, paths, workers=self.workers, log=self.log)

            manifest = self.to_manifest()
            manifest.snapshots.append(result.snapshot)
            write_manifest(self.location, manifest, self.log)
            self.snapshots.append(result.snapshot)

        self.log.info(
            f"Snapshot {result.snapshot.snapshot_id} created with "
            f"{len(result.snapshot.entries)} files, {len(result.failures)} failures"
        )
        return result

    def find_snapshot(self, snapshot_id: Optional[str] = None) -> Snapshot:
        """
        Select a snapshot by id, or the most recent one when *snapshot_id* is
        None.

        Raises:
            SnapshotNotFound: If no snapshot has *snapshot_id*
            NoSnapshots: If the history is empty
        """
        if snapshot_id is None:
            if not self.snapshots:
                raise NoSnapshots(f"Vault {self.location} has no snapshots")
            return self.snapshots[-1]

        for snapshot in self.snapshots:
            if snapshot.snapshot_id == snapshot_id:
                return snapshot
        raise SnapshotNotFound(f"Snapshot {snapshot_id} not found")

    def restore(
        self, target_dir: Union[str, Path], snapshot_id: Optional[str] = None
    ) -> List[Path]:
        """
        Restore a snapshot into *target_dir*.

        The vault is re-opened (and the password re-verified) under the vault
        lock before anything is read.

        Args:
            target_dir: Destination directory
            snapshot_id: Snapshot to restore; the latest when None

        Returns:
            Restored file paths
        """
        with vault_lock(self.location):
            fresh = Vault.open(self.location, self._password, self.workers, self.log)
            snapshot = fresh.find_snapshot(snapshot_id)
            return restore_snapshot(
                self.location,
                snapshot,
                Path(target_dir).expanduser(),
                fresh.crypto,
                log=self.log,
            )

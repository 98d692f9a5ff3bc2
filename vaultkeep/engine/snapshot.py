"""
Snapshot engine for Vaultkeep.

Expands the backup inputs into a flat, ordered file list, resolves every file
through the content store (in a thread pool) and assembles the resulting
``Snapshot``. Persisting the snapshot is left to the vault.
"""

import logging
import os
import stat
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from vaultkeep.engine import BackupFailure, BackupResult, Snapshot, VaultFile
from vaultkeep.engine.store import ContentStore
from vaultkeep.errors import FileOpenError, VaultFileError

logger = logging.getLogger("vaultkeep.snapshot")

# (absolute source path, path to restore it under)
DiscoveredFile = Tuple[Path, str]


def _walk(
    directory: Path,
    root: Path,
    found: List[DiscoveredFile],
    skipped: List[Path],
    failures: List[BackupFailure],
) -> None:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        failures.append(BackupFailure(directory, FileOpenError.kind, str(e)))
        return

    for entry in entries:
        path = Path(entry.path)
        if entry.is_symlink():
            skipped.append(path)
        elif entry.is_dir(follow_symlinks=False):
            _walk(path, root, found, skipped, failures)
        elif entry.is_file(follow_symlinks=False):
            found.append((path, path.relative_to(root).as_posix()))
        else:
            skipped.append(path)


def expand_paths(
    paths: Iterable[Union[str, Path]],
) -> Tuple[List[DiscoveredFile], List[Path], List[BackupFailure]]:
    """
    Expand backup inputs into regular files, in discovery order.

    Directories are walked depth-first with entries sorted by name; files
    found inside keep their path relative to the input directory. A plain
    file input is recorded under its own name. Symlinks, devices, FIFOs and
    sockets are skipped and reported.

    Args:
        paths: Files and directories to back up

    Returns:
        Tuple of (discovered files, skipped paths, failures for inputs that
        could not be inspected)
    """
    found: List[DiscoveredFile] = []
    skipped: List[Path] = []
    failures: List[BackupFailure] = []

    for raw in paths:
        path = Path(raw).expanduser().absolute()
        try:
            mode = os.lstat(path).st_mode
        except OSError as e:
            failures.append(BackupFailure(path, FileOpenError.kind, str(e)))
            continue

        if stat.S_ISDIR(mode):
            _walk(path, path, found, skipped, failures)
        elif stat.S_ISREG(mode):
            found.append((path, path.name))
        else:
            skipped.append(path)

    return found, skipped, failures


def build_snapshot(
    store: ContentStore,
    paths: Iterable[Union[str, Path]],
    workers: int = 1,
    log: Optional[logging.Logger] = None,
) -> BackupResult:
    """
    Resolve *paths* through *store* and assemble a new snapshot.

    A file that fails is reported in ``BackupResult.failures`` and left out
    of the snapshot; it never aborts the rest of the backup.

    Args:
        store: Content store bound to the vault
        paths: Files and directories to back up
        workers: Number of files hashed and copied concurrently
        log: Logger to use instead of the module logger

    Returns:
        The new snapshot with its failures and skipped inputs
    """
    log = log or logger
    found, skipped, failures = expand_paths(paths)
    log.info(f"Discovered {len(found)} files ({len(skipped)} skipped)")

    def resolve(item: DiscoveredFile) -> Tuple[Optional[VaultFile], Optional[BackupFailure]]:
        path, relative = item
        try:
            return store.add(path, relative), None
        except VaultFileError as e:
            log.warning(f"Failed to back up {path}: {e.message}")
            return None, BackupFailure(path, e.kind, e.message)

    if workers > 1 and len(found) > 1:
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="vaultkeep"
        ) as pool:
            outcomes = list(pool.map(resolve, found))
    else:
        outcomes = [resolve(item) for item in found]

    entries: List[VaultFile] = []
    for entry, failure in outcomes:
        if entry is not None:
            entries.append(entry)
        elif failure is not None:
            failures.append(failure)

    for path in skipped:
        log.warning(f"Skipped {path}: not a regular file or directory")

    snapshot = Snapshot(
        snapshot_id=str(uuid.uuid4()),
        created_at=datetime.now(timezone.utc),
        entries=tuple(entries),
    )
    return BackupResult(snapshot=snapshot, failures=failures, skipped=skipped)

"""
Tests for the content-addressed store.
"""

import hashlib
import os
import sys
from pathlib import Path
from typing import Dict
from unittest.mock import patch

import pytest

from vaultkeep.crypto import NONCE_SIZE, TAG_SIZE, CryptoContext
from vaultkeep.engine import VaultFile
from vaultkeep.engine.store import BLOB_DIR, ContentStore, blob_path_for
from vaultkeep.errors import FileCopyError, FileOpenError, FileReadError

from .conftest import FAST_KDF

HELLO_HASH = hashlib.sha256(b"hello").hexdigest()


def _blobs(root: Path) -> list:
    return [p for p in (root / BLOB_DIR).rglob("*") if p.is_file()]


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


def test_blob_path_uses_full_hash() -> None:
    path = blob_path_for(HELLO_HASH)
    assert path == f"blobs/{HELLO_HASH[:2]}/{HELLO_HASH[2:4]}/{HELLO_HASH}"
    assert path.endswith(HELLO_HASH)


def test_hash_file(vault_root: Path, source_dir: Path) -> None:
    store = ContentStore(vault_root, {}, buffer_size=2)
    assert store.hash_file(source_dir / "a.txt") == (HELLO_HASH, 5)


def test_add_copies_unseen_content(vault_root: Path, source_dir: Path) -> None:
    index: Dict[str, VaultFile] = {}
    store = ContentStore(vault_root, index)

    entry = store.add(source_dir / "a.txt")

    assert entry.content_hash == HELLO_HASH
    assert entry.file_name == "a.txt"
    assert entry.relative_path == "a.txt"
    assert entry.size_bytes == 5
    assert entry.source_path == str((source_dir / "a.txt").absolute())
    assert entry.stored_paths == (blob_path_for(HELLO_HASH),)
    assert (vault_root / entry.stored_paths[0]).read_bytes() == b"hello"
    assert index == {HELLO_HASH: entry}


def test_identical_content_is_stored_once(vault_root: Path, source_dir: Path) -> None:
    """Same bytes under different names resolve to one blob."""
    index: Dict[str, VaultFile] = {}
    store = ContentStore(vault_root, index)

    a = store.add(source_dir / "a.txt")
    b = store.add(source_dir / "b.txt", "nested/b.txt")

    assert a.stored_paths == b.stored_paths
    assert b.file_name == "b.txt"
    assert b.relative_path == "nested/b.txt"
    assert len(_blobs(vault_root)) == 1
    assert list(index) == [HELLO_HASH]


def test_index_hit_never_copies(vault_root: Path, source_dir: Path) -> None:
    """An index loaded from an earlier backup suppresses the copy."""
    index: Dict[str, VaultFile] = {}
    ContentStore(vault_root, index).add(source_dir / "a.txt")

    later = ContentStore(vault_root, index)
    with patch.object(ContentStore, "_copy_in") as mock_copy:
        entry = later.add(source_dir / "b.txt")

    mock_copy.assert_not_called()
    assert entry.stored_paths == index[HELLO_HASH].stored_paths


def test_missing_source(vault_root: Path, tmp_path: Path) -> None:
    store = ContentStore(vault_root, {})
    with pytest.raises(FileOpenError):
        store.add(tmp_path / "missing.txt")


def test_failed_copy_leaves_no_partial_blob(
    vault_root: Path, source_dir: Path
) -> None:
    index: Dict[str, VaultFile] = {}
    store = ContentStore(vault_root, index)

    with patch("vaultkeep.engine.store.os.fsync", side_effect=OSError("disk full")):
        with pytest.raises(FileCopyError):
            store.add(source_dir / "a.txt")

    assert _blobs(vault_root) == []
    assert index == {}

    # The store stays usable
    store.add(source_dir / "a.txt")
    assert len(_blobs(vault_root)) == 1


def test_content_changing_mid_copy_is_rejected(
    vault_root: Path, source_dir: Path
) -> None:
    store = ContentStore(vault_root, {})
    with patch.object(store, "hash_file", return_value=("0" * 64, 5)):
        with pytest.raises(FileReadError):
            store.add(source_dir / "a.txt")
    assert _blobs(vault_root) == []


def test_encrypted_blob_is_not_plaintext(vault_root: Path, source_dir: Path) -> None:
    crypto = CryptoContext.new("p1", FAST_KDF)
    store = ContentStore(vault_root, {}, crypto=crypto)

    entry = store.add(source_dir / "a.txt")
    raw = (vault_root / entry.stored_paths[0]).read_bytes()

    assert b"hello" not in raw
    assert len(raw) == NONCE_SIZE + 5 + TAG_SIZE
    assert entry.content_hash == HELLO_HASH


def test_concurrent_adds_copy_once(vault_root: Path, tmp_path: Path) -> None:
    """Workers racing on one new hash produce a single copy."""
    from concurrent.futures import ThreadPoolExecutor

    src = tmp_path / "many"
    src.mkdir()
    files = []
    for i in range(16):
        path = src / f"f{i}.bin"
        path.write_bytes(b"same content" * 1000)
        files.append(path)

    index: Dict[str, VaultFile] = {}
    store = ContentStore(vault_root, index)
    original = ContentStore._copy_in
    with patch.object(
        ContentStore, "_copy_in", autospec=True, side_effect=original
    ) as spy:
        with ThreadPoolExecutor(max_workers=8) as pool:
            entries = list(pool.map(store.add, files))

    assert spy.call_count == 1
    assert len({e.stored_paths for e in entries}) == 1
    assert len(index) == 1
    assert len(_blobs(vault_root)) == 1
    assert not [p for p in os.listdir(vault_root) if p.startswith(".tmp-")]


@pytest.mark.skipif(sys.platform != "linux", reason="needs byte file names")
def test_non_utf8_name_is_rejected_before_copy(
    vault_root: Path, tmp_path: Path
) -> None:
    bad = Path(os.fsdecode(os.path.join(os.fsencode(tmp_path), b"bad\xff.txt")))
    bad.write_bytes(b"bad name")
    index: Dict[str, VaultFile] = {}
    store = ContentStore(vault_root, index)

    with pytest.raises(FileOpenError) as exc_info:
        store.add(bad)

    assert exc_info.value.path == bad
    assert "UTF-8" in exc_info.value.message
    assert index == {}
    assert _blobs(vault_root) == []

"""
Shared fixtures for the unit tests.
"""

from pathlib import Path

import pytest

from vaultkeep.crypto import KdfParams

# Cheapest Argon2id parameters accepted by the library
FAST_KDF = KdfParams(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def fast_kdf() -> KdfParams:
    return FAST_KDF


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """A directory with two files of identical content and one nested file."""
    src = tmp_path / "source"
    (src / "docs").mkdir(parents=True)
    (src / "a.txt").write_text("hello")
    (src / "b.txt").write_text("hello")
    (src / "docs" / "notes.md").write_text("# notes\n")
    return src

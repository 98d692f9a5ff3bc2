"""
Engine package for Vaultkeep.

This module provides the records shared by the content store, the snapshot
engine and the restore engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class VaultFile:
    """One content-bearing entry of a snapshot."""

    file_name: str
    relative_path: str
    content_hash: str
    source_path: str
    size_bytes: int

    # Vault-relative blob locations, concatenated in order on restore
    stored_paths: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "relative_path": self.relative_path,
            "content_hash": self.content_hash,
            "source_path": self.source_path,
            "size_bytes": self.size_bytes,
            "stored_paths": list(self.stored_paths),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultFile":
        """Construct a ``VaultFile`` from its manifest representation."""
        stored_paths = data["stored_paths"]
        if not isinstance(stored_paths, list) or not all(
            isinstance(p, str) for p in stored_paths
        ):
            raise ValueError("stored_paths must be a list of strings")
        size_bytes = data["size_bytes"]
        if not isinstance(size_bytes, int) or size_bytes < 0:
            raise ValueError("size_bytes must be a non-negative integer")
        return cls(
            file_name=str(data["file_name"]),
            relative_path=str(data.get("relative_path") or data["file_name"]),
            content_hash=str(data["content_hash"]),
            source_path=str(data["source_path"]),
            size_bytes=size_bytes,
            stored_paths=tuple(stored_paths),
        )


@dataclass(frozen=True)
class Snapshot:
    """Represents one immutable backup point."""

    snapshot_id: str
    created_at: datetime
    entries: Tuple[VaultFile, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "created_at": self.created_at.isoformat(),
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        entries = data["entries"]
        if not isinstance(entries, list):
            raise ValueError("entries must be a list")
        return cls(
            snapshot_id=str(data["snapshot_id"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            entries=tuple(VaultFile.from_dict(e) for e in entries),
        )

    @property
    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.entries)


@dataclass(frozen=True)
class BackupFailure:
    """A file that could not be added to a snapshot."""

    path: Path
    kind: str
    message: str


@dataclass
class BackupResult:
    """Outcome of one backup call."""

    snapshot: Snapshot
    failures: List[BackupFailure] = field(default_factory=list)

    # Inputs that are neither regular files nor directories (symlinks, devices)
    skipped: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

"""
Manifest document: encoding and validation of ``vault.json``.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import orjson

from vaultkeep.crypto import EXPORT_SIZE, KdfParams
from vaultkeep.engine import Snapshot, VaultFile
from vaultkeep.errors import ManifestWriteError, VaultReadError

MANIFEST_FORMAT = "vaultkeep-manifest"
MANIFEST_VERSION = 1

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class EncryptionInfo:
    """Public parameters needed to re-derive the blob key from the password."""

    exported: bytes
    kdf: KdfParams = field(default_factory=KdfParams)
    cipher: str = "aes-256-gcm"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cipher": self.cipher,
            "kdf": "argon2id",
            "kdf_params": self.kdf.to_dict(),
            "context": self.exported.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptionInfo":
        if data.get("cipher") != "aes-256-gcm" or data.get("kdf") != "argon2id":
            raise ValueError("unsupported encryption scheme")
        exported = bytes.fromhex(data["context"])
        if len(exported) != EXPORT_SIZE:
            raise ValueError("encryption context has the wrong length")
        return cls(exported=exported, kdf=KdfParams.from_dict(data["kdf_params"]))


@dataclass
class VaultManifest:
    """Everything persisted about a vault except its config."""

    snapshots: List[Snapshot] = field(default_factory=list)
    content_index: Dict[str, VaultFile] = field(default_factory=dict)
    encryption: Optional[EncryptionInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": MANIFEST_FORMAT,
            "version": MANIFEST_VERSION,
            "encryption": self.encryption.to_dict() if self.encryption else None,
            "snapshots": [snap.to_dict() for snap in self.snapshots],
            "content_index": {
                content_hash: entry.to_dict()
                for content_hash, entry in sorted(self.content_index.items())
            },
        }

    def encode(self) -> bytes:
        """Serialize to JSON bytes."""
        try:
            return orjson.dumps(self.to_dict(), option=orjson.OPT_INDENT_2)
        except (TypeError, orjson.JSONEncodeError) as e:
            raise ManifestWriteError(f"Failed to serialize manifest: {e}") from e

    @classmethod
    def decode(cls, raw: bytes) -> "VaultManifest":
        """
        Parse and validate manifest bytes.

        Raises:
            VaultReadError: If the bytes are not a well-formed manifest
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise VaultReadError(f"Manifest is not valid JSON: {e}") from e

        if not isinstance(data, dict) or data.get("format") != MANIFEST_FORMAT:
            raise VaultReadError("File is not a vault manifest")
        if data.get("version") != MANIFEST_VERSION:
            raise VaultReadError(f"Unsupported manifest version: {data.get('version')}")

        try:
            raw_snapshots = data["snapshots"]
            raw_index = data["content_index"]
            if not isinstance(raw_snapshots, list) or not isinstance(raw_index, dict):
                raise ValueError("snapshots must be a list and content_index a map")

            snapshots = [Snapshot.from_dict(s) for s in raw_snapshots]
            content_index: Dict[str, VaultFile] = {}
            for content_hash, raw_entry in raw_index.items():
                entry = VaultFile.from_dict(raw_entry)
                if not _HASH_RE.match(content_hash) or entry.content_hash != content_hash:
                    raise ValueError(f"content index key mismatch: {content_hash}")
                content_index[content_hash] = entry

            encryption = None
            if data.get("encryption") is not None:
                encryption = EncryptionInfo.from_dict(data["encryption"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise VaultReadError(f"Malformed manifest: {e}") from e

        return cls(snapshots=snapshots, content_index=content_index, encryption=encryption)

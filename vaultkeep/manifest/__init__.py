"""
Vault manifest for Vaultkeep.

This package holds the persisted form of a vault (snapshot history, content
index and encryption parameters) and the atomic read/write of ``vault.json``.
The manifest type has no password field, so secrets cannot be serialized.
"""

from vaultkeep.manifest.document import EncryptionInfo, VaultManifest
from vaultkeep.manifest.persist import MANIFEST_FILE, read_manifest, write_manifest

__all__ = [
    "EncryptionInfo",
    "MANIFEST_FILE",
    "VaultManifest",
    "read_manifest",
    "write_manifest",
]

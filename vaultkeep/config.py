"""
Configuration file support for Vaultkeep.

Loads settings from ``~/.config/vaultkeep/config.yaml`` (or
``$XDG_CONFIG_HOME/vaultkeep/config.yaml``) and exposes them as typed
dataclasses that the CLI can merge with command-line flags.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from vaultkeep.crypto import KdfParams

logger = logging.getLogger("vaultkeep.config")


def default_config_path() -> Path:
    """Return the default configuration file path.

    Uses ``$XDG_CONFIG_HOME/vaultkeep/config.yaml`` when set, otherwise
    falls back to ``~/.config/vaultkeep/config.yaml``.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "vaultkeep" / "config.yaml"
    return Path.home() / ".config" / "vaultkeep" / "config.yaml"


def _positive_int(value: Any, name: str, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    logger.warning("Ignoring invalid %s: %r", name, value)
    return default


@dataclass
class VaultkeepConfig:
    """Top-level configuration loaded from the YAML file."""

    vault: Optional[Path] = None
    workers: int = 4
    encrypt: bool = True
    kdf: KdfParams = field(default_factory=KdfParams)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultkeepConfig":
        """Construct a ``VaultkeepConfig`` from a parsed YAML dictionary."""
        if not isinstance(data, dict):
            return cls()

        defaults = cls()

        vault = data.get("vault")
        workers = data.get("workers", defaults.workers)
        encrypt = data.get("encrypt", defaults.encrypt)
        if not isinstance(encrypt, bool):
            logger.warning("Ignoring invalid encrypt: %r", encrypt)
            encrypt = defaults.encrypt

        kdf_data = data.get("kdf") or {}
        if not isinstance(kdf_data, dict):
            logger.warning("Skipping invalid kdf entry: %s", kdf_data)
            kdf_data = {}
        kdf_defaults = KdfParams()
        kdf = KdfParams(
            time_cost=_positive_int(
                kdf_data.get("time_cost", kdf_defaults.time_cost),
                "kdf.time_cost",
                kdf_defaults.time_cost,
            ),
            memory_cost=_positive_int(
                kdf_data.get("memory_cost", kdf_defaults.memory_cost),
                "kdf.memory_cost",
                kdf_defaults.memory_cost,
            ),
            parallelism=_positive_int(
                kdf_data.get("parallelism", kdf_defaults.parallelism),
                "kdf.parallelism",
                kdf_defaults.parallelism,
            ),
        )
        if not kdf.is_valid():
            logger.warning(
                "Ignoring kdf settings: memory_cost %d is below 8 * parallelism (%d)",
                kdf.memory_cost,
                kdf.parallelism,
            )
            kdf = kdf_defaults

        return cls(
            vault=Path(str(vault)).expanduser() if vault else None,
            workers=_positive_int(workers, "workers", defaults.workers),
            encrypt=encrypt,
            kdf=kdf,
        )

    @classmethod
    def from_file(cls, path: Path) -> "VaultkeepConfig":
        """Read a YAML file and return a ``VaultkeepConfig``.

        Returns an empty default config on any error.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f.read())
            if data is None:
                return cls()
            return cls.from_dict(data)
        except (IOError, yaml.YAMLError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "VaultkeepConfig":
        """Main entry point: load config from *config_path* or the default location.

        Returns an empty config if the file does not exist.
        """
        path = config_path or default_config_path()
        if not path.exists():
            return cls()
        return cls.from_file(path)

"""
Tests for the config module.
"""

import os
from pathlib import Path
from unittest.mock import patch

from vaultkeep.config import VaultkeepConfig, default_config_path
from vaultkeep.crypto import KdfParams


def test_default_config_path() -> None:
    """default_config_path falls back to ~/.config/vaultkeep/config.yaml."""
    env = {"HOME": str(Path.home())}
    with patch.dict(os.environ, env, clear=True):
        result = default_config_path()
        assert result == Path.home() / ".config" / "vaultkeep" / "config.yaml"


def test_default_config_path_xdg() -> None:
    """default_config_path respects $XDG_CONFIG_HOME."""
    with patch.dict(os.environ, {"XDG_CONFIG_HOME": "/custom/config"}):
        result = default_config_path()
        assert result == Path("/custom/config/vaultkeep/config.yaml")


def test_missing_file_returns_defaults(tmp_path: Path) -> None:
    """Loading a non-existent file returns the default config."""
    cfg = VaultkeepConfig.load(tmp_path / "nonexistent.yaml")
    assert cfg.vault is None
    assert cfg.workers == 4
    assert cfg.encrypt is True
    assert cfg.kdf == KdfParams()


def test_empty_file_returns_defaults(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text("")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg == VaultkeepConfig()


def test_full_config_parsing(tmp_path: Path) -> None:
    """A fully-populated config file is parsed correctly."""
    p = tmp_path / "config.yaml"
    p.write_text("""\
vault: "/srv/backups/vault"
workers: 8
encrypt: false
kdf:
  time_cost: 2
  memory_cost: 32768
  parallelism: 1
""")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.vault == Path("/srv/backups/vault")
    assert cfg.workers == 8
    assert cfg.encrypt is False
    assert cfg.kdf == KdfParams(time_cost=2, memory_cost=32768, parallelism=1)


def test_vault_path_expands_home(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text('vault: "~/vault"\n')
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.vault == Path.home() / "vault"


def test_partial_kdf_keeps_other_defaults(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text("kdf:\n  time_cost: 5\n")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.kdf.time_cost == 5
    assert cfg.kdf.memory_cost == KdfParams().memory_cost
    assert cfg.kdf.parallelism == KdfParams().parallelism


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    """Bad values are ignored field by field instead of failing the load."""
    p = tmp_path / "config.yaml"
    p.write_text("""\
workers: 0
encrypt: "sometimes"
kdf:
  time_cost: -1
  memory_cost: "lots"
  parallelism: true
""")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.workers == 4
    assert cfg.encrypt is True
    assert cfg.kdf == KdfParams()


def test_kdf_not_a_mapping(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text("kdf: fast\n")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.kdf == KdfParams()


def test_invalid_yaml_returns_defaults(tmp_path: Path) -> None:
    """Malformed YAML returns the default config instead of raising."""
    p = tmp_path / "config.yaml"
    p.write_text(": : : [invalid yaml")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg == VaultkeepConfig()


def test_from_dict_non_dict() -> None:
    """from_dict with a non-dict value returns defaults."""
    cfg = VaultkeepConfig.from_dict("not a dict")  # type: ignore[arg-type]
    assert cfg.vault is None


def test_load_uses_default_path(tmp_path: Path) -> None:
    """load() without arguments uses default_config_path()."""
    p = tmp_path / "config.yaml"
    p.write_text("workers: 2\n")
    with patch("vaultkeep.config.default_config_path", return_value=p):
        cfg = VaultkeepConfig.load()
    assert cfg.workers == 2


def test_kdf_memory_below_parallelism_falls_back(tmp_path: Path) -> None:
    """Each value is positive, but Argon2 rejects the combination."""
    p = tmp_path / "config.yaml"
    p.write_text("kdf:\n  time_cost: 1\n  memory_cost: 8\n  parallelism: 4\n")
    cfg = VaultkeepConfig.from_file(p)
    assert cfg.kdf == KdfParams()

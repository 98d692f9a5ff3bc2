"""
Command-line interface for Vaultkeep.

This module provides the command-line entry point for the Vaultkeep backup
vault. Passwords are read from the system keyring when one was stored with
``--remember``, otherwise from an interactive prompt; never from arguments.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, List, Optional

import keyring
import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from vaultkeep import __version__
from vaultkeep.config import VaultkeepConfig
from vaultkeep.engine import BackupResult
from vaultkeep.engine.vault import Vault
from vaultkeep.errors import (
    NoSnapshots,
    SnapshotNotFound,
    VaultCreationError,
    VaultDoesNotExist,
    VaultError,
    VaultWrongPassword,
)

# Set up the console and logger
console = Console()
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("vaultkeep")

KEYRING_SERVICE = "vaultkeep"

# Create the Typer app
app = typer.Typer(
    help="Password-protected, deduplicating local backup vault.",
    add_completion=False,
)


def log_error(message: str) -> None:
    """Log an error message to both logger and console."""
    logger.error(message)
    console.print(f"[red]{message}[/red]", markup=True, highlight=False)
    return None


def get_config(ctx: typer.Context) -> VaultkeepConfig:
    """Return the config loaded by the callback (defaults when run standalone)."""
    if isinstance(ctx.obj, VaultkeepConfig):
        return ctx.obj
    return VaultkeepConfig.load()


def resolve_vault_path(option: Optional[str], config: VaultkeepConfig) -> Path:
    """Pick the vault directory from the option or the config file."""
    if option:
        return Path(option).expanduser()
    if config.vault:
        logger.debug(f"Using vault from config: {config.vault}")
        return config.vault
    log_error("Vault path not specified. Use --vault/--target or set 'vault' in config.")
    raise typer.Exit(1)


def _keyring_account(vault_path: Path) -> str:
    return str(vault_path.expanduser().resolve())


def get_password(vault_path: Path, confirm: bool = False) -> str:
    """
    Get the vault password from the keyring, or prompt for it.

    Args:
        vault_path: Vault the password belongs to
        confirm: Ask twice (used when creating a vault)

    Returns:
        The password
    """
    try:
        pwd = keyring.get_password(KEYRING_SERVICE, _keyring_account(vault_path))
    except KeyringError as e:
        logger.debug(f"Keyring unavailable: {e}")
        pwd = None
    if pwd:
        logger.debug("Loaded password from keyring.")
        return pwd
    return typer.prompt("Vault password", hide_input=True, confirmation_prompt=confirm)


def remember_password(vault_path: Path, password: str) -> None:
    """Store the vault password in the system keyring."""
    try:
        keyring.set_password(KEYRING_SERVICE, _keyring_account(vault_path), password)
        logger.info("Password saved to system keychain.")
    except KeyringError as e:
        logger.warning(f"Could not save password to keychain: {e}")


def open_vault(vault_path: Path, config: VaultkeepConfig, password: str) -> Vault:
    """Open an existing vault, exiting with a distinct message on failure."""
    try:
        return Vault.open(vault_path, password, workers=config.workers)
    except VaultWrongPassword:
        log_error(f"Wrong password for vault {vault_path}")
        raise typer.Exit(1) from None
    except VaultDoesNotExist:
        log_error(f"No vault found at {vault_path}")
        raise typer.Exit(1) from None
    except VaultError as e:
        log_error(f"Failed to open vault {vault_path}: {e}")
        raise typer.Exit(1) from None


def _is_new_vault(vault_path: Path) -> bool:
    if not vault_path.exists():
        return True
    return vault_path.is_dir() and not any(vault_path.iterdir())


def _display_path(path: Path) -> str:
    """Render *path* for the console, escaping bytes that are not UTF-8."""
    return str(path).encode("utf-8", "backslashreplace").decode("utf-8")


def print_backup_result(result: BackupResult) -> None:
    """Summarize a backup on the console."""
    snapshot = result.snapshot
    console.print(
        f"Snapshot {snapshot.snapshot_id} created with {len(snapshot.entries)} files "
        f"({snapshot.total_size} bytes)",
        highlight=False,
    )
    for path in result.skipped:
        console.print(
            f"[yellow]Skipped (not a regular file): {_display_path(path)}[/yellow]",
            highlight=False,
        )
    if result.failures:
        table = Table(title="Failed files")
        table.add_column("Path")
        table.add_column("Error")
        table.add_column("Details")
        for failure in result.failures:
            table.add_row(_display_path(failure.path), failure.kind, failure.message)
        console.print(table)


@app.callback()
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output."
    ),
    json_logs: bool = typer.Option(
        False, "--json", help="Output logs in JSON format."
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to the configuration file."
    ),
    version: bool = typer.Option(
        False, "--version", help="Show the application version and exit."
    ),
) -> None:
    """
    Vaultkeep: snapshot once, store each content once, restore anything.
    """
    if version:
        console.print(f"Vaultkeep version: {__version__}")
        raise typer.Exit()

    # Configure logging level based on verbosity
    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Configure JSON logging if requested
    if json_logs:
        for handler in list(logging.root.handlers):
            logging.root.removeHandler(handler)
        logging.basicConfig(
            level=logging.INFO if not verbose else logging.DEBUG,
            format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stdout,
        )
        logger.debug("JSON logging enabled")

    ctx.obj = VaultkeepConfig.load(config)


@app.command()
def backup(
    ctx: typer.Context,
    paths: Annotated[
        List[str],
        typer.Argument(help="Files and directories to back up."),
    ],
    target: Annotated[
        Optional[str],
        typer.Option(
            "--target",
            "-t",
            help="Vault directory. Created if missing or empty. "
            "Uses 'vault' from the config file if not set.",
        ),
    ] = None,
    remember: Annotated[
        bool,
        typer.Option("--remember", help="Store the password in the system keychain."),
    ] = False,
) -> None:
    """
    Back up files and directories as a new snapshot.
    """
    config = get_config(ctx)
    vault_path = resolve_vault_path(target, config)

    is_new = _is_new_vault(vault_path)
    password = get_password(vault_path, confirm=is_new)
    if is_new:
        logger.info(f"Creating new vault at {vault_path}")
        try:
            vault = Vault.create(
                vault_path,
                password,
                encrypt=config.encrypt,
                kdf=config.kdf,
                workers=config.workers,
            )
        except VaultCreationError as e:
            log_error(f"Failed to create vault: {e}")
            raise typer.Exit(1) from None
    else:
        vault = open_vault(vault_path, config, password)

    if remember:
        remember_password(vault_path, password)

    logger.info(f"Backing up {len(paths)} paths to {vault_path}...")
    try:
        result = vault.backup(paths)
    except VaultError as e:
        log_error(f"Backup failed: {e}")
        raise typer.Exit(1) from None

    print_backup_result(result)
    if result.failures and not result.snapshot.entries:
        raise typer.Exit(1)


@app.command()
def restore(
    ctx: typer.Context,
    target_dir: Annotated[
        str, typer.Argument(help="Directory to restore the snapshot into.")
    ],
    vault: Annotated[
        Optional[str],
        typer.Option(
            "--vault", help="Vault directory. Uses 'vault' from config if not set."
        ),
    ] = None,
    snapshot: Annotated[
        Optional[str],
        typer.Option(
            "--snapshot", "-s", help="Snapshot ID to restore (default: latest)."
        ),
    ] = None,
) -> None:
    """
    Restore a snapshot into a directory.
    """
    config = get_config(ctx)
    vault_path = resolve_vault_path(vault, config)
    opened = open_vault(vault_path, config, get_password(vault_path))

    selector = snapshot or "latest"
    logger.info(f"Restoring snapshot {selector} to {target_dir}...")
    try:
        restored = opened.restore(target_dir, snapshot)
    except SnapshotNotFound:
        log_error(f"Snapshot {snapshot} not found")
        raise typer.Exit(1) from None
    except NoSnapshots:
        log_error("The vault has no snapshots to restore")
        raise typer.Exit(1) from None
    except VaultError as e:
        log_error(f"Restore failed: {e}")
        raise typer.Exit(1) from None

    console.print(
        f"Successfully restored {len(restored)} files to {target_dir}", highlight=False
    )


@app.command(name="snapshots")
def list_snapshots(
    ctx: typer.Context,
    vault: Annotated[
        Optional[str],
        typer.Option(
            "--vault", help="Vault directory. Uses 'vault' from config if not set."
        ),
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output snapshots in JSON format.")
    ] = False,
) -> None:
    """
    List the vault's snapshots, oldest first.
    """
    config = get_config(ctx)
    vault_path = resolve_vault_path(vault, config)
    opened = open_vault(vault_path, config, get_password(vault_path))

    if not opened.snapshots:
        console.print("No snapshots found")
        return

    if json_output:
        snapshot_data = [
            {
                "id": snap.snapshot_id,
                "time": snap.created_at.isoformat(),
                "files": len(snap.entries),
                "size": snap.total_size,
            }
            for snap in opened.snapshots
        ]
        console.print_json(json.dumps(snapshot_data))
    else:
        table = Table(title="Available Snapshots")
        table.add_column("ID", no_wrap=True)
        table.add_column("Time")
        table.add_column("Files", justify="right")
        table.add_column("Size", justify="right")

        for snap in opened.snapshots:
            table.add_row(
                snap.snapshot_id,
                snap.created_at.strftime("%Y-%m-%d %H:%M:%S %Z"),
                str(len(snap.entries)),
                str(snap.total_size),
            )
        console.print(table)


@app.command()
def version() -> None:
    """Show the application version and exit."""
    console.print(f"Vaultkeep version: {__version__}")


if __name__ == "__main__":
    app()

"""
Command-line interface for keyferry.

Provides commands for exporting the local accounts to an encrypted backup
file, importing such a file on another machine, and managing the accounts
directory.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, NoReturn

from keyferry import __version__
from keyferry.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)
from keyferry.crypto.cipher import FernetCipherProvider, PasswordPolicy
from keyferry.errors import (
    ExchangeError,
    IncompatibleArtifactError,
    NothingToExportError,
    UserCancelledError,
)
from keyferry.exchange import (
    ExportOrchestrator,
    ImportOrchestrator,
    OperationProgress,
    ProgressReporter,
)
from keyferry.store.credential_store import (
    BundleNotFoundError,
    DirectoryCredentialStore,
    StoreError,
)

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0

# Attempts allowed to type a matching password twice
MAX_PASSWORD_ATTEMPTS = 3


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output like JSON).
    """
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """
    Print a verbose message only if verbosity is high enough.

    Args:
        message: The message to print.
        level: Required verbosity level to show this message.
    """
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """
    Print an error message (always shown, even in quiet mode).

    Args:
        message: The error message to print.
    """
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for keyferry CLI."""
    parser = argparse.ArgumentParser(
        prog="keyferry",
        description="Encrypted backup and restore for local account credentials",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"keyferry {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.keyferry/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show configuration and accounts directory information",
        description="Display version, configuration paths, and number of stored accounts.",
    )
    info_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    info_parser.set_defaults(func=cmd_info)

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Create the default configuration",
        description="Write a default config file and create the accounts directory.",
    )
    init_parser.set_defaults(func=cmd_init)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List stored accounts",
        description="List the credential bundles in the accounts directory.",
    )
    list_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    list_parser.set_defaults(func=cmd_list)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export all accounts to an encrypted backup file",
        description="Collect every stored account and write one password-protected backup file.",
    )
    export_parser.add_argument(
        "--output",
        "-o",
        metavar="PATH",
        help="Backup file or directory (default: prompt, then export.output_dir)",
    )
    export_parser.add_argument(
        "--password-env",
        metavar="VAR",
        dest="password_env",
        help="Read the password from this environment variable instead of prompting",
    )
    export_parser.set_defaults(func=cmd_export)

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Restore accounts from an encrypted backup file",
        description="Decrypt a backup file and restore every account it contains.",
    )
    import_parser.add_argument(
        "backup_file",
        metavar="FILE",
        help="Path to backup file (.enc)",
    )
    import_parser.add_argument(
        "--password-env",
        metavar="VAR",
        dest="password_env",
        help="Read the password from this environment variable instead of prompting",
    )
    import_parser.set_defaults(func=cmd_import)

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Verify a backup file without restoring it",
        description="Decrypt and validate a backup file, then show what it contains.",
    )
    inspect_parser.add_argument(
        "backup_file",
        metavar="FILE",
        help="Path to backup file (.enc)",
    )
    inspect_parser.add_argument(
        "--password-env",
        metavar="VAR",
        dest="password_env",
        help="Read the password from this environment variable instead of prompting",
    )
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    # delete command
    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete one stored account",
        description="Delete a credential bundle from the accounts directory.",
    )
    delete_parser.add_argument(
        "name",
        metavar="NAME",
        help="Bundle filename, with or without the .json suffix",
    )
    delete_parser.set_defaults(func=cmd_delete)

    # clear command
    clear_parser = subparsers.add_parser(
        "clear",
        help="Delete all stored accounts",
        description="Delete every credential bundle from the accounts directory.",
    )
    clear_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt",
    )
    clear_parser.set_defaults(func=cmd_clear)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_settings(args: argparse.Namespace) -> Settings:
    """Load settings, honoring the --config override."""
    config_path = Path(args.config) if args.config else None
    return load_config(config_path)


def create_store(settings: Settings) -> DirectoryCredentialStore:
    """Create the credential store described by the settings."""
    return DirectoryCredentialStore(Path(settings.accounts_dir).expanduser())


def create_cipher(settings: Settings) -> FernetCipherProvider:
    """Create the backup cipher described by the settings."""
    return FernetCipherProvider(
        iterations=settings.security.kdf_iterations,
        policy=PasswordPolicy(
            min_length=settings.security.min_password_length,
            max_length=settings.security.max_password_length,
        ),
    )


def _show_progress(event: OperationProgress) -> None:
    """Progress listener: show stage messages at -v and above."""
    if event.progress is not None and event.progress not in (0, 100):
        output_verbose(f"  [{event.progress:3d}%] {event.message}", level=2)
    else:
        output_verbose(f"  {event.message}")


def _read_password(args: argparse.Namespace, confirm: bool = False) -> str | None:
    """
    Get the backup password from the environment or an interactive prompt.

    Args:
        args: Parsed arguments (uses args.password_env).
        confirm: Ask twice and require both entries to match.

    Returns:
        The password, or None if the user cancelled or gave up.
    """
    if args.password_env:
        password = os.environ.get(args.password_env)
        if password is None:
            output_error(f"Error: Environment variable {args.password_env} is not set.")
        return password

    try:
        for _ in range(MAX_PASSWORD_ATTEMPTS):
            password = getpass.getpass("Backup password: ")
            if not confirm:
                return password
            if getpass.getpass("Confirm password: ") == password:
                return password
            output_error("Error: Passwords do not match.")
    except (EOFError, KeyboardInterrupt):
        output()
        return None

    output_error("Error: Too many attempts.")
    return None


def _choose_destination(default: Path) -> Path | None:
    """Ask where to save the backup. Returns None if the prompt is abandoned."""
    try:
        answer = input(f"Save backup to [{default}]: ").strip()
    except (EOFError, KeyboardInterrupt):
        output()
        return None
    return Path(answer).expanduser() if answer else default


def _format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, UTC).strftime("%Y-%m-%d %H:%M:%S")


def cmd_info(args: argparse.Namespace) -> int:
    """Show configuration and accounts directory information."""
    import platform as platform_module

    settings = load_settings(args)
    config_path = Path(args.config) if args.config else get_config_path()
    store = create_store(settings)

    try:
        account_count: int | None = len(store.collect_all())
    except StoreError as e:
        logger.warning(f"Could not read accounts directory: {e}")
        account_count = None

    info: dict[str, Any] = {
        "version": __version__,
        "python_version": platform_module.python_version(),
        "platform": platform_module.platform(),
        "config_file": str(config_path),
        "config_exists": config_path.exists(),
        "accounts_dir": str(store.accounts_dir),
        "account_count": account_count,
        "kdf_iterations": settings.security.kdf_iterations,
    }

    if args.json:
        output(json.dumps(info, indent=2), force=True)
        return 0

    output("keyferry Information")
    output("=" * 50)
    output()
    output(f"  Version:         {info['version']}")
    output(f"  Python:          {info['python_version']}")
    output(f"  Platform:        {info['platform']}")
    output()
    output(f"  Config file:     {info['config_file']}"
           + ("" if info["config_exists"] else " (not created, using defaults)"))
    output(f"  Accounts dir:    {info['accounts_dir']}")
    output(f"  Stored accounts: {account_count if account_count is not None else 'unreadable'}")
    output(f"  KDF iterations:  {info['kdf_iterations']:,}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Create the default configuration."""
    config_path = Path(args.config) if args.config else get_config_path()

    output("keyferry Initialization")
    output("=" * 50)
    output()

    if config_path.exists():
        output(f"Configuration already exists: {config_path}")
        settings = load_settings(args)
    else:
        settings = Settings()
        try:
            save_config(settings, config_path)
        except ConfigurationError as e:
            output_error(f"Error creating configuration: {e}")
            return 1
        output(f"Configuration file created: {config_path}")

    accounts_dir = Path(settings.accounts_dir).expanduser()
    try:
        accounts_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        output_error(f"Error creating accounts directory: {e}")
        return 1
    output(f"Accounts directory: {accounts_dir}")

    output()
    output("Initialization complete.")
    output()
    output("Next steps:")
    output("  1. Run 'keyferry export' to write an encrypted backup")
    output("  2. Copy the .enc file to the other machine")
    output("  3. Run 'keyferry import <file>' there")
    output()
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List stored accounts."""
    settings = load_settings(args)
    store = create_store(settings)

    try:
        bundles = store.collect_all()
    except StoreError as e:
        output_error(f"Error: {e}")
        return 1

    if args.format == "json":
        data = [
            {"filename": bundle.filename, "timestamp": bundle.timestamp}
            for bundle in bundles
        ]
        output(json.dumps(data, indent=2), force=True)
        return 0

    if not bundles:
        output(f"No accounts found in {store.accounts_dir}")
        return 0

    output(f"Accounts in {store.accounts_dir}:")
    output()
    width = max(len(bundle.filename) for bundle in bundles)
    for bundle in bundles:
        output(f"  {bundle.filename:<{width}}  {_format_timestamp(bundle.timestamp)}")
    output()
    output(f"Total: {len(bundles)}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export all accounts to an encrypted backup file."""
    settings = load_settings(args)

    progress = ProgressReporter()
    progress.subscribe(_show_progress)

    output_dir = settings.export.output_dir
    exporter = ExportOrchestrator(
        store=create_store(settings),
        cipher=create_cipher(settings),
        progress=progress,
        output_dir=Path(output_dir).expanduser() if output_dir else None,
        filename_prefix=settings.export.filename_prefix,
    )

    output("keyferry Export")
    output("=" * 50)
    output()

    # Emptiness is checked before any password is requested
    try:
        bundles = exporter.collect()
    except (NothingToExportError, StoreError) as e:
        output_error(f"Export failed: {e}")
        return 1

    output(f"Found {len(bundles)} accounts to export.")
    output()

    if args.output:
        destination: Path | None = Path(args.output).expanduser()
    elif args.password_env or not sys.stdin.isatty():
        destination = exporter.default_destination()
    else:
        destination = _choose_destination(exporter.default_destination())

    if destination is None:
        output("Export cancelled: no save location selected.")
        return 0

    password = _read_password(args, confirm=True)
    if password is None:
        output("Export cancelled.")
        return 0 if not args.password_env else 1

    try:
        result = exporter.export(password, destination, bundles=bundles)
    except UserCancelledError:
        output("Export cancelled.")
        return 0
    except ExchangeError as e:
        output_error(f"Export failed: {e}")
        return 1

    output()
    output("Backup exported successfully!")
    output()
    output(f"  File:     {result.path}")
    output(f"  Accounts: {result.item_count}")
    output(f"  Size:     {result.size_bytes:,} bytes")
    output()
    output("To restore on another machine, run:")
    output(f"  keyferry import {result.path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Restore accounts from an encrypted backup file."""
    backup_path = Path(args.backup_file).expanduser()

    if not backup_path.exists():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    settings = load_settings(args)

    progress = ProgressReporter()
    progress.subscribe(_show_progress)

    importer = ImportOrchestrator(
        store=create_store(settings),
        cipher=create_cipher(settings),
        progress=progress,
    )

    output("keyferry Import")
    output("=" * 50)
    output()
    output(f"Backup file: {backup_path}")
    output()

    password = _read_password(args)
    if password is None:
        output("Import cancelled.")
        return 0 if not args.password_env else 1

    try:
        result = importer.import_file(password, backup_path)
    except UserCancelledError:
        output("Import cancelled.")
        return 0
    except IncompatibleArtifactError as e:
        output_error("Import failed: backup file format is not supported:")
        for error in e.errors:
            output_error(f"  - {error}")
        return 1
    except ExchangeError as e:
        output_error(f"Import failed: {e}")
        return 1

    for warning in result.warnings:
        output(f"Warning: {warning}")
    if result.warnings:
        output()

    outcome = result.outcome
    if outcome.failed:
        output(
            f"Backup imported. Restored {outcome.restored_count} accounts, "
            f"{len(outcome.failed)} failed:"
        )
        for item in outcome.failed:
            output(f"  - {item.filename or '(unnamed)'}: {item.error}")
    else:
        output(f"Backup imported. Restored {outcome.restored_count} accounts.")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Verify a backup file without restoring it."""
    backup_path = Path(args.backup_file).expanduser()

    if not backup_path.exists():
        output_error(f"Error: Backup file not found: {backup_path}")
        return 1

    settings = load_settings(args)
    importer = ImportOrchestrator(
        store=create_store(settings),
        cipher=create_cipher(settings),
    )

    password = _read_password(args)
    if password is None:
        output("Inspection cancelled.")
        return 0 if not args.password_env else 1

    try:
        snapshot, validation = importer.inspect_file(password, backup_path)
    except IncompatibleArtifactError as e:
        output_error("Backup verification failed:")
        for error in e.errors:
            output_error(f"  - {error}")
        return 1
    except ExchangeError as e:
        output_error(f"Backup verification failed: {e}")
        return 1

    if args.json:
        data = {
            "format_version": snapshot.format_version,
            "created_at": snapshot.created_at.isoformat() if snapshot.created_at else None,
            "item_count": len(snapshot.items),
            "items": [
                {"filename": item.filename, "timestamp": item.timestamp}
                for item in snapshot.items
            ],
            "metadata": snapshot.metadata.to_dict(),
            "warnings": validation.warnings,
        }
        output(json.dumps(data, indent=2), force=True)
        return 0

    output("Backup verified successfully.")
    output()
    output(f"  {importer.codec.summarize(snapshot)}")
    output()
    for item in snapshot.items:
        output(f"  - {item.filename or '(unnamed)'}")
    for warning in validation.warnings:
        output(f"Warning: {warning}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete one stored account."""
    settings = load_settings(args)
    store = create_store(settings)

    try:
        store.delete_one(args.name)
    except BundleNotFoundError:
        output_error(f"Error: Account not found: {args.name}")
        return 1
    except StoreError as e:
        output_error(f"Error: {e}")
        return 1

    output(f"Deleted account: {args.name}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Delete all stored accounts."""
    settings = load_settings(args)
    store = create_store(settings)

    if not args.force:
        output(f"WARNING: This will delete every account in {store.accounts_dir}.")
        try:
            response = input("Proceed? [y/N]: ").strip().lower()
        except EOFError:
            response = ""
        if response not in ("y", "yes"):
            output("Clear cancelled.")
            return 0

    try:
        deleted = store.clear_all()
    except StoreError as e:
        output_error(f"Error: {e}")
        return 1

    output(f"Cleared {deleted} accounts.")
    return 0


def main() -> NoReturn:
    """Main entry point for keyferry CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet, args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

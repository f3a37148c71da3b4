#!/usr/bin/env python3

import argparse
import sys
import os
import logging
from pathlib import Path
from typing import List, Optional

# Project imports
from bloat_scanner.core.controller import CoreController
from bloat_scanner.ui.cli import handle_cli_command
from bloat_scanner.modules.config_manager import ConfigManager
from bloat_scanner.db.audit_log import AuditLog
from bloat_scanner.core.errors import AuditLogError
from bloat_scanner.utils.helpers import parse_size

# Define default paths based on XDG Base Directory Specification
XDG_CONFIG_HOME = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
XDG_DATA_HOME = Path(os.environ.get('XDG_DATA_HOME', Path.home() / '.local/share'))

APP_NAME = "disk-bloat-scanner"
DEFAULT_CONFIG_PATH = XDG_CONFIG_HOME / APP_NAME / "config.toml"
DEFAULT_AUDIT_LOG_PATH = XDG_DATA_HOME / APP_NAME / "deletion_log.jsonl"

# --- Logging Setup ---
log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_str, logging.INFO)
# Simple format for console output
log_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
# Log to stderr so tables on stdout stay clean
stream_handler = logging.StreamHandler(sys.stderr)
stream_handler.setFormatter(log_formatter)

logger = logging.getLogger(__name__)


def setup_logging():
    """Configures the root logger once, for CLI runs only."""
    logging.basicConfig(level=log_level, handlers=[stream_handler])


def size_arg(value: str) -> int:
    """argparse type for sizes like '100M' or '2G'."""
    size = parse_size(value)
    if size is None:
        raise argparse.ArgumentTypeError(f"invalid size: '{value}' (use e.g. 500K, 100M, 2G)")
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Disk Bloat Scanner: find large files, duplicates and regenerable bloat, and clean them up safely.",
        epilog="Run '<command> --help' for more information on a specific command."
    )
    parser.add_argument("-c", "--config", type=Path, default=DEFAULT_CONFIG_PATH, help=f"Configuration file (default: {DEFAULT_CONFIG_PATH}).")
    subparsers = parser.add_subparsers(dest="command", title="Available Commands", required=True)

    def add_scan_options(sub: argparse.ArgumentParser):
        sub.add_argument("root", type=str, help="Directory to scan.")
        sub.add_argument("-m", "--min-size", type=size_arg, default=None, help="Size threshold, e.g. 100M (default from config).")
        sub.add_argument("-n", "--limit", type=int, default=50, help="Maximum number of rows to display.")
        sub.add_argument("-L", "--follow-symlinks", action="store_true", default=None, help="Follow symbolic links while walking.")
        sub.add_argument("--json", action="store_true", help="Output results in JSON format.")

    # --- Large Files Command ---
    parser_large = subparsers.add_parser("large", help="List the largest files under a directory.")
    add_scan_options(parser_large)

    # --- Bloat Command ---
    parser_bloat = subparsers.add_parser("bloat", help="Find regenerable bloat (node_modules, build output, caches...).")
    add_scan_options(parser_bloat)
    parser_bloat.add_argument("-d", "--details", action="store_true", help="List the entries of each category.")

    # --- Duplicates Command ---
    parser_dupes = subparsers.add_parser("dupes", help="Find byte-identical duplicate files.")
    add_scan_options(parser_dupes)

    # --- Clean Command ---
    parser_clean = subparsers.add_parser("clean", help="Remove selected paths (to the trash by default).")
    parser_clean.add_argument("-r", "--root", type=str, required=True, help="Root of the scan the paths came from; nothing outside it is touched.")
    parser_clean.add_argument("paths", nargs='*', help="Paths to remove.")
    parser_clean.add_argument("--category", type=str, help="Remove every entry of this bloat category under --root.")
    parser_clean.add_argument("--dry-run", action="store_true", help="Show what would be done without making changes.")
    parser_clean.add_argument("--permanent", action="store_true", help="Delete permanently instead of moving to the trash.")
    parser_clean.add_argument("--confirm-root", action="store_true", help="Allow removing the --root directory itself.")
    parser_clean.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation (use with caution!).")

    # --- History Command ---
    parser_history = subparsers.add_parser("history", help="Show the deletion audit log.")
    parser_history.add_argument("-n", "--limit", type=int, default=20, help="Number of most recent records to show.")
    parser_history.add_argument("--summary", action="store_true", help="Show totals per outcome instead of records.")
    parser_history.add_argument("--clear", action="store_true", help="Erase the deletion history.")
    parser_history.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation when clearing.")

    # --- Rules Command ---
    parser_rules = subparsers.add_parser("rules", help="List the bloat detection rules.")
    parser_rules.add_argument("--category", type=str, help="Only show rules of this category.")

    # --- Config Command ---
    parser_config = subparsers.add_parser("config", help="View configuration settings.")
    parser_config.add_argument("key", nargs='?', help="The configuration key to view, e.g. duplicates.max_size.")
    parser_config.add_argument("--list", action="store_true", help="List all configuration settings.")
    parser_config.add_argument("--path", action="store_true", help="Print the configuration file location.")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the Disk Bloat Scanner."""
    setup_logging()
    args = build_parser().parse_args(argv)

    logger.info(f"Using configuration file: {args.config}")
    try:
        config_manager = ConfigManager(args.config)
        audit_path = config_manager.get_audit_log_path() or DEFAULT_AUDIT_LOG_PATH
        logger.info(f"Using audit log: {audit_path}")
        audit_log = AuditLog(audit_path)
        controller = CoreController(config_manager, audit_log)

        logger.debug(f"Executing command: {args.command} with args: {vars(args)}")

        # --- Handle Commands via CLI module ---
        exit_code = handle_cli_command(args, controller, config_manager)

    except AuditLogError as e:
        logger.critical(f"Cannot open the deletion audit log: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        # Catch-all for unhandled exceptions
        logger.critical(f"A critical error occurred: {e}", exc_info=True)
        from rich.console import Console
        console = Console(stderr=True)
        console.print("\n[bold red]A critical error occurred:[/bold red]")
        console.print_exception(show_locals=False)
        sys.exit(1)

    if exit_code == 0:
        logger.info("Operation completed successfully.")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

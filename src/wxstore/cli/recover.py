#!/usr/bin/env python3
"""
wxstore Database Recovery Tool

Command-line utility for inspecting and repairing the store's database file.

Usage:
    python -m wxstore.cli.recover [db_path] [options]

Examples:
    # Integrity check only
    python -m wxstore.cli.recover data/wechat-mcp.db --check

    # Run the automatic repair (backup, VACUUM or recreate)
    python -m wxstore.cli.recover data/wechat-mcp.db --repair

    # Same, keeping a rotating log of what the repair did
    python -m wxstore.cli.recover data/wechat-mcp.db --repair --log-dir logs/

    # List backups left by earlier repairs
    python -m wxstore.cli.recover data/wechat-mcp.db --list-backups

    # Restore a specific backup
    python -m wxstore.cli.recover data/wechat-mcp.db --restore data/wechat-mcp.db.backup.1700000000000
"""

import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from wxstore.core.logging_config import setup_production_logging
from wxstore.core.settings import StorageSettings
from wxstore.storage.errors import StorageError
from wxstore.utils.recovery import (
    check_database,
    list_backups,
    repair_database,
    restore_backup,
)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="wxstore-recover",
        description="wxstore Database Recovery Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check the configured database
  %(prog)s --check

  # Repair a specific file
  %(prog)s data/wechat-mcp.db --repair

  # Restore the newest backup
  %(prog)s data/wechat-mcp.db --list-backups
  %(prog)s data/wechat-mcp.db --restore data/wechat-mcp.db.backup.<millis>

Without a database path, WXSTORE_DB_PATH or the default location is used.
        """,
    )

    parser.add_argument(
        "database",
        nargs="?",
        help="Path to the database file",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--check",
        action="store_true",
        help="Run the integrity check without modifying the file (default)",
    )
    mode.add_argument(
        "--repair",
        action="store_true",
        help="Back up the file, then VACUUM it or recreate it",
    )
    mode.add_argument(
        "--list-backups",
        action="store_true",
        help="List backups written by earlier repairs",
    )
    mode.add_argument(
        "--restore",
        type=str,
        metavar="BACKUP",
        help="Replace the database with the given backup",
    )

    parser.add_argument(
        "--log-dir",
        type=Path,
        metavar="DIR",
        help="Also write rotating log files (wxstore.log, repairs.log, errors.log) to DIR "
        "(default: WXSTORE_LOG_DIR when set)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show detailed recovery progress",
    )

    args = parser.parse_args(argv)

    settings = StorageSettings.from_env()
    if args.database:
        settings = replace(settings, db_path=Path(args.database))
    db_path = settings.db_path

    log_dir = args.log_dir or settings.log_dir
    if log_dir is not None:
        setup_production_logging(
            settings,
            log_dir=log_dir,
            console_level=logging.DEBUG if args.verbose else logging.WARNING,
        )
    elif args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    # List backups mode
    if args.list_backups:
        backups = list_backups(db_path)
        if not backups:
            print(f"No backups found for {db_path}")
            return 0

        print(f"\nFound {len(backups)} backup(s) for {db_path}:\n")
        for info in backups:
            created = datetime.fromtimestamp(info.created_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
            print(f"  {info.path}  ({created}, {info.size} bytes)")
        return 0

    # Restore mode
    if args.restore:
        success, message = restore_backup(db_path, args.restore)
        if success:
            print(f"✓ {message}")
            return 0
        print(f"✗ {message}", file=sys.stderr)
        return 1

    # Repair mode
    if args.repair:
        if not db_path.exists():
            print(f"Error: Database not found: {db_path}", file=sys.stderr)
            return 1

        print(f"Attempting to repair: {db_path}\n")
        try:
            outcome = repair_database(db_path, force=True)
        except StorageError as e:
            print("✗ Repair failed")
            print(f"  {e}")
            return 1

        print("✓ Repair finished")
        if outcome is not None:
            print(f"  Action: {outcome.action.value}")
            if outcome.backup_path:
                print(f"  Backup: {outcome.backup_path}")
            if outcome.reason:
                print(f"  Reason: {outcome.reason}")
        return 0

    # Check mode
    if not db_path.exists():
        print(f"Error: Database not found: {db_path}", file=sys.stderr)
        return 1

    try:
        report = check_database(db_path)
    except StorageError as e:
        print(f"✗ Check failed: {e}", file=sys.stderr)
        return 1

    print(f"Integrity of {db_path}: {report.status.value}")
    for line in report.diagnostics:
        print(f"  {line}")

    if not report.ok:
        print("\nTry these recovery options:")
        print("  1. Run with --repair to back up and rebuild the file")
        print("  2. Run with --list-backups to see earlier copies")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Offline recovery utilities for wxstore database files.

Provides tools to:
- Inspect a database without bringing the service up
- Force the automatic repair (backup, VACUUM or recreate)
- List and restore the ``<db>.backup.<millis>`` copies the repair leaves behind
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from wxstore.storage.connection import ConnectionManager
from wxstore.storage.errors import is_corruption_error, wrap_error
from wxstore.storage.integrity import IntegrityReport, IntegrityStatus, classify_integrity
from wxstore.storage.repair import RepairOutcome, RepairPipeline
from wxstore.storage.sqlite_utils import (
    BACKUP_MARKER,
    copy_backup,
    delete_sidecars,
    open_read_only,
    validate_database_file,
)

log = logging.getLogger(__name__)

__all__ = [
    "BackupInfo",
    "list_backups",
    "validate_database_file",
    "restore_backup",
    "check_database",
    "repair_database",
]


@dataclass(frozen=True)
class BackupInfo:
    path: Path
    created_ms: int
    size: int


# =============================================================================
# Backups
# =============================================================================


def list_backups(db_path: str | os.PathLike[str]) -> list[BackupInfo]:
    """
    Find the backups written next to ``db_path`` by earlier repairs.

    Returns:
        Backups sorted newest first.
    """
    path = Path(db_path)
    if not path.parent.exists():
        return []

    prefix = path.name + BACKUP_MARKER
    backups = []
    for candidate in path.parent.iterdir():
        if not candidate.name.startswith(prefix) or not candidate.is_file():
            continue
        stamp = candidate.name[len(prefix):]
        if not stamp.isdigit():
            continue
        backups.append(BackupInfo(candidate, int(stamp), candidate.stat().st_size))

    return sorted(backups, key=lambda info: info.created_ms, reverse=True)


def restore_backup(
    db_path: str | os.PathLike[str], backup_path: str | os.PathLike[str]
) -> tuple[bool, str]:
    """
    Replace ``db_path`` with a validated backup.

    The current file (if any) is itself backed up first so a restore can be
    undone. Stale ``-wal``/``-shm`` files are removed, since they belong to the
    file being replaced.

    Returns:
        Tuple of (success, message)
    """
    target = Path(db_path)
    source = Path(backup_path)

    if not source.exists():
        return False, f"Backup not found: {source}"
    if not validate_database_file(source):
        return False, f"Backup failed validation: {source}"

    try:
        if target.exists():
            previous = copy_backup(target)
            log.info(f"Saved current database as {previous}")
        delete_sidecars(target)
        shutil.copy2(source, target)
    except OSError as e:
        log.error(f"Restore failed: {e}")
        return False, f"Restore failed: {e}"

    log.info(f"Restored {target} from {source}")
    return True, f"Restored from backup: {source.name}"


# =============================================================================
# Check & repair
# =============================================================================


def check_database(db_path: str | os.PathLike[str]) -> IntegrityReport:
    """
    Run the integrity scan the service runs on startup, without repairing.

    The file is opened read-only and no pragmas are applied, so its journal
    mode and header stay exactly as they were.
    """
    path = Path(db_path)
    if not path.exists():
        return IntegrityReport(IntegrityStatus.CORRUPT, (f"Database not found: {path}",))

    try:
        conn = open_read_only(path)
    except sqlite3.Error as e:
        raise wrap_error(e, path=path, action="Opening database read-only") from e
    try:
        rows = conn.execute("PRAGMA integrity_check").fetchall()
    except sqlite3.Error as e:
        if is_corruption_error(e):
            log.warning(f"Integrity check failed with corruption error: {e}")
            return IntegrityReport(IntegrityStatus.CORRUPT, (str(e),))
        raise wrap_error(e, path=path, action="Checking integrity") from e
    finally:
        with contextlib.suppress(sqlite3.Error):
            conn.close()

    diagnostics = tuple(str(row[0]) for row in rows)
    return IntegrityReport(classify_integrity(diagnostics), diagnostics)


def repair_database(
    db_path: str | os.PathLike[str], *, force: bool = False
) -> RepairOutcome | None:
    """
    Bring ``db_path`` to a healthy state using the service's repair pipeline.

    Args:
        db_path: Database file
        force: Repair even if the file currently checks out healthy
            (a file repaired while opening is not repaired twice)

    Returns:
        The repair outcome, or None if the database was healthy and ``force``
        was not given.

    Raises:
        RepairExhaustedError: if the file is still unusable after one repair
    """
    return asyncio.run(_repair_database(Path(db_path), force))


async def _repair_database(path: Path, force: bool) -> RepairOutcome | None:
    pipeline = RepairPipeline(ConnectionManager(path))
    try:
        await pipeline.initialize()
        if force and pipeline.last_outcome is None:
            await pipeline.recover()
        return pipeline.last_outcome
    finally:
        await pipeline.manager.close()

"""File-level SQLite helpers used by repair and offline recovery."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import sqlite3
import time
from pathlib import Path

log = logging.getLogger(__name__)

__all__ = [
    "SIDECAR_SUFFIXES",
    "BACKUP_MARKER",
    "backup_path_for",
    "copy_backup",
    "delete_sidecars",
    "remove_database_file",
    "open_read_only",
    "validate_database_file",
]

SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")
BACKUP_MARKER = ".backup."


def backup_path_for(path: str | os.PathLike[str], *, now_ms: int | None = None) -> Path:
    """Return ``<path>.backup.<epoch-millis>``."""

    stamp = int(time.time() * 1000) if now_ms is None else int(now_ms)
    return Path(f"{Path(path)}{BACKUP_MARKER}{stamp}")


def copy_backup(path: str | os.PathLike[str], *, now_ms: int | None = None) -> Path:
    """Copy ``path`` to a timestamped sibling and return the backup path."""

    target = backup_path_for(path, now_ms=now_ms)
    shutil.copy2(path, target)
    return target


def delete_sidecars(path: str | os.PathLike[str]) -> None:
    """Remove ``-wal``/``-shm``/``-journal`` files adjacent to ``path`` if present."""

    base = str(Path(path))
    for suffix in SIDECAR_SUFFIXES:
        try:
            os.remove(base + suffix)
        except FileNotFoundError:
            continue


def remove_database_file(path: str | os.PathLike[str]) -> bool:
    """Delete ``path`` and its sidecars; returns ``True`` if the main file existed."""

    db_path = Path(path)
    existed = db_path.exists()
    if existed:
        db_path.unlink()
    delete_sidecars(db_path)
    return existed


def open_read_only(path: str | os.PathLike[str]) -> sqlite3.Connection:
    """Open ``path`` with a read-only URI; no pragmas are set and nothing is written."""

    return sqlite3.connect(f"{Path(path).resolve().as_uri()}?mode=ro", uri=True, timeout=5)


def validate_database_file(path: str | os.PathLike[str]) -> bool:
    """Check if SQLite file is valid and not corrupted."""

    try:
        conn = open_read_only(path)
    except sqlite3.Error:
        return False
    try:
        (status,) = conn.execute("PRAGMA quick_check").fetchone()
        return str(status).lower() == "ok"
    except sqlite3.Error:
        return False
    finally:
        with contextlib.suppress(sqlite3.Error):
            conn.close()

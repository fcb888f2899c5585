# wxstore
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Rotating-file logging for the store and its recovery tooling."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from wxstore.core.settings import StorageSettings

__all__ = ["REPAIR_LOGGERS", "QUIET_LOGGERS", "setup_production_logging", "get_log_directory"]

PACKAGE_LOGGER = "wxstore"

# Backups, VACUUM/recreate decisions and restores.
REPAIR_LOGGERS = ("wxstore.storage.repair", "wxstore.storage.store", "wxstore.utils.recovery")

# Per-open and per-query detail; kept out of the console below WARNING.
QUIET_LOGGERS = ("wxstore.storage.connection", "wxstore.storage.sqlite")


class _LoggerPrefixFilter(logging.Filter):
    """Pass records from the given logger subtrees (or, inverted, everything else)."""

    def __init__(self, prefixes: tuple[str, ...], *, exclude_below: int | None = None):
        super().__init__()
        self.prefixes = prefixes
        self.exclude_below = exclude_below

    def _matches(self, name: str) -> bool:
        return any(name == p or name.startswith(p + ".") for p in self.prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        if self.exclude_below is None:
            return self._matches(record.name)
        return record.levelno >= self.exclude_below or not self._matches(record.name)


def _rotating(path: Path, max_mb: int, backups: int, level: int, fmt: logging.Formatter):
    handler = RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_production_logging(
    settings: StorageSettings | None = None,
    *,
    console_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> Path:
    """
    Attach rotating log files to the ``wxstore`` logger.

    Creates three log files:
    - wxstore.log: every DEBUG+ record from the package (10 MB per file, 5 rotations)
    - repairs.log: INFO+ from repair, retry and restore code (5 MB, 3 rotations)
    - errors.log: ERROR+ only (5 MB per file, 3 rotations)

    Console output is capped at ``console_level``; connection and accessor
    records additionally need WARNING to reach the console. The file handlers
    are not affected by either cap.

    Args:
        settings: Store settings; the database path and whether encryption is
            on are written to the banner (the secret itself never is)
        console_level: Minimum level for console output (default: INFO)
        log_dir: Log directory; falls back to ``settings.log_dir``, then the
            platform location

    Returns:
        Path to the log directory
    """
    if log_dir is None and settings is not None:
        log_dir = settings.log_dir
    log_dir = Path(log_dir) if log_dir is not None else _get_log_directory(PACKAGE_LOGGER)
    log_dir.mkdir(parents=True, exist_ok=True)

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    pkg_logger.setLevel(logging.DEBUG)
    # Handlers live on the package logger only; the host's root config is untouched.
    pkg_logger.propagate = False
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()

    detailed_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")

    app_log_path = log_dir / "wxstore.log"
    pkg_logger.addHandler(_rotating(app_log_path, 10, 5, logging.DEBUG, detailed_formatter))

    repair_log_path = log_dir / "repairs.log"
    repair_handler = _rotating(repair_log_path, 5, 3, logging.INFO, detailed_formatter)
    repair_handler.addFilter(_LoggerPrefixFilter(REPAIR_LOGGERS))
    pkg_logger.addHandler(repair_handler)

    error_log_path = log_dir / "errors.log"
    pkg_logger.addHandler(_rotating(error_log_path, 5, 3, logging.ERROR, detailed_formatter))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)
    console_handler.addFilter(_LoggerPrefixFilter(QUIET_LOGGERS, exclude_below=logging.WARNING))
    pkg_logger.addHandler(console_handler)

    log = logging.getLogger(__name__)
    log.info("=" * 70)
    log.info("wxstore logging initialized")
    log.info(f"Log directory: {log_dir}")
    log.info(f"Main log: {app_log_path}")
    log.info(f"Repair log: {repair_log_path}")
    log.info(f"Error log: {error_log_path}")
    if settings is not None:
        log.info(f"Database: {settings.db_path}")
        log.info(f"Field encryption: {'on' if settings.encryption_enabled else 'off'}")
    log.info(f"Platform: {sys.platform}, Python: {sys.version.split()[0]}")
    log.info("=" * 70)

    return log_dir


def _get_log_directory(app_name: str) -> Path:
    """
    Get platform-specific log directory.

    - Windows: %LOCALAPPDATA%\\AppName\\logs
    - macOS: ~/Library/Logs/AppName
    - Linux: ~/.local/share/AppName/logs
    """
    home = Path.home()

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        return base / app_name / "logs"

    elif sys.platform == "darwin":
        return home / "Library" / "Logs" / app_name

    else:
        xdg_data_home = os.environ.get("XDG_DATA_HOME", home / ".local" / "share")
        return Path(xdg_data_home) / app_name / "logs"


def get_log_directory(settings: StorageSettings | None = None) -> Path:
    """Where :func:`setup_production_logging` writes, without configuring anything."""

    if settings is not None and settings.log_dir is not None:
        return settings.log_dir
    return _get_log_directory(PACKAGE_LOGGER)

# wxstore
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Environment-driven settings for the storage subsystem."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

__all__ = [
    "SECRET_ENV_VAR",
    "DB_PATH_ENV_VAR",
    "BUSY_TIMEOUT_ENV_VAR",
    "LOG_DIR_ENV_VAR",
    "DEFAULT_DB_PATH",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "StorageSettings",
]

SECRET_ENV_VAR = "WECHAT_MCP_SECRET_KEY"
DB_PATH_ENV_VAR = "WXSTORE_DB_PATH"
BUSY_TIMEOUT_ENV_VAR = "WXSTORE_BUSY_TIMEOUT_MS"
LOG_DIR_ENV_VAR = "WXSTORE_LOG_DIR"

# src/wxstore/core/settings.py -> <repo root>/data/wechat-mcp.db
DEFAULT_DB_PATH = Path(__file__).resolve().parents[3] / "data" / "wechat-mcp.db"
DEFAULT_BUSY_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class StorageSettings:
    """Location, secret and lock-wait bound for one database file."""

    db_path: Path = DEFAULT_DB_PATH
    secret_key: str | None = None
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    log_dir: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StorageSettings:
        """
        Build settings from environment variables.

        - ``WXSTORE_DB_PATH``: database file location
        - ``WECHAT_MCP_SECRET_KEY``: enables field encryption when non-empty
        - ``WXSTORE_BUSY_TIMEOUT_MS``: lock wait before reporting a busy database
        - ``WXSTORE_LOG_DIR``: where rotating log files go once logging is set up
        """
        env = os.environ if environ is None else environ

        raw_path = env.get(DB_PATH_ENV_VAR)
        db_path = Path(raw_path).expanduser() if raw_path else DEFAULT_DB_PATH

        secret = env.get(SECRET_ENV_VAR) or None

        busy_timeout_ms = DEFAULT_BUSY_TIMEOUT_MS
        raw_timeout = env.get(BUSY_TIMEOUT_ENV_VAR)
        if raw_timeout:
            try:
                busy_timeout_ms = max(0, int(raw_timeout))
            except ValueError:
                log.warning(
                    "Ignoring invalid %s=%r, using %d ms",
                    BUSY_TIMEOUT_ENV_VAR,
                    raw_timeout,
                    DEFAULT_BUSY_TIMEOUT_MS,
                )

        raw_log_dir = env.get(LOG_DIR_ENV_VAR)
        log_dir = Path(raw_log_dir).expanduser() if raw_log_dir else None

        return cls(
            db_path=db_path,
            secret_key=secret,
            busy_timeout_ms=busy_timeout_ms,
            log_dir=log_dir,
        )

    @property
    def encryption_enabled(self) -> bool:
        return bool(self.secret_key)

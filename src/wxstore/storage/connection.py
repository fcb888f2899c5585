"""Ownership of the single live aiosqlite handle for a database file."""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

import aiosqlite

from wxstore.core.settings import DEFAULT_BUSY_TIMEOUT_MS
from wxstore.storage.errors import StorageError, StorageErrorKind, wrap_error
from wxstore.storage.sqlite import schema as _schema

log = logging.getLogger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Open, configure and close the database handle.

    The manager never repairs anything itself: failures are raised as typed
    :class:`StorageError` instances and the handle is always left fully closed
    when ``open()`` fails, so callers (the repair state machine) can decide
    what to do next.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ):
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError(
                f"Database {self.path} is not open", path=self.path, kind=StorageErrorKind.OTHER
            )
        return self._conn

    def owns(self, conn: aiosqlite.Connection) -> bool:
        """True while ``conn`` is the live handle (a repair swaps it out)."""

        return conn is not None and conn is self._conn

    async def open(self) -> aiosqlite.Connection:
        """Open (creating if needed) and configure the database file."""

        await self.close()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise wrap_error(exc, path=self.path, action="Creating database directory") from exc

        try:
            conn = await aiosqlite.connect(
                self.path.as_posix(),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            log.error("Failed to open database %s: %s", self.path, exc)
            raise wrap_error(exc, path=self.path, action="Opening database") from exc

        conn.row_factory = aiosqlite.Row
        self._conn = conn
        try:
            await self.configure()
        except sqlite3.Error as exc:
            log.error("Failed to configure database %s: %s", self.path, exc)
            await self.close()
            raise wrap_error(exc, path=self.path, action="Configuring database") from exc
        except BaseException:
            await self.close()
            raise
        log.debug("Opened database %s", self.path)
        return conn

    async def configure(self) -> None:
        """Apply WAL, NORMAL sync, busy timeout and foreign keys."""

        await _schema.apply_default_pragmas(self.connection, busy_timeout_ms=self.busy_timeout_ms)

    async def close(self) -> None:
        """Release the handle; safe to call repeatedly, never raises."""

        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as exc:
            log.warning("Error closing database %s: %s", self.path, exc)
        else:
            log.debug("Database connection closed: %s", self.path)

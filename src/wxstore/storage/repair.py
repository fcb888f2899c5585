"""
Corruption recovery for the wxstore database.

Bringing the store online is a small state machine::

    OPEN -> CHECKING -> HEALTHY
      |        |
      +--------+--> REPAIRING -> OPEN (once) -> ... | FATAL

``OPEN`` opens and configures the handle, ``CHECKING`` runs the integrity
scan, ``HEALTHY`` creates the schema, ``REPAIRING`` runs the file repair
(backup, vacuum or recreate).  A corruption signature seen a second time
after a repair ends in ``FATAL``, which closes the handle and raises
:class:`~wxstore.storage.errors.RepairExhaustedError`.

The same machine serves the initial open, a failed integrity scan and
corruption reported by an accessor write, so all three behave identically.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from wxstore.storage import integrity as _integrity
from wxstore.storage.connection import ConnectionManager
from wxstore.storage.errors import (
    RepairExhaustedError,
    StorageError,
    StorageErrorKind,
    is_corruption_error,
    wrap_error,
)
from wxstore.storage.sqlite import schema as _schema
from wxstore.storage.sqlite_utils import copy_backup, remove_database_file

log = logging.getLogger(__name__)

__all__ = ["RecoveryState", "RepairAction", "RepairOutcome", "RepairPipeline"]


class RecoveryState(enum.Enum):
    OPEN = "open"
    CHECKING = "checking"
    HEALTHY = "healthy"
    REPAIRING = "repairing"
    FATAL = "fatal"


class RepairAction(enum.Enum):
    VACUUMED = "vacuumed"
    RECREATED = "recreated"
    MISSING = "missing"


@dataclass(frozen=True)
class RepairOutcome:
    action: RepairAction
    backup_path: Path | None = None
    reason: str | None = None


class RepairPipeline:
    """Drive a :class:`ConnectionManager` to a healthy, schema-complete state."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self.state: RecoveryState | None = None
        self.generation = 0
        self.last_outcome: RepairOutcome | None = None
        self.last_report: _integrity.IntegrityReport | None = None
        self._lock = asyncio.Lock()
        self._failure: BaseException | str | None = None

    @property
    def path(self) -> Path:
        return self.manager.path

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------ #
    # Entry points                                                       #
    # ------------------------------------------------------------------ #
    async def initialize(self) -> None:
        """(Re)open the database, repairing it once if it is corrupted."""

        async with self._lock:
            await self._run(RecoveryState.OPEN)

    async def ensure_online(self) -> None:
        """Bring the store up unless it is already open; waits for a running repair."""

        if self.manager.is_open and not self._lock.locked():
            return
        async with self._lock:
            if self.manager.is_open:
                return
            log.warning("Database not initialized, attempting to initialize...")
            await self._run(RecoveryState.OPEN)

    async def recover(self, observed_generation: int | None = None) -> None:
        """
        Repair after a caller observed a corruption error, then reopen.

        ``observed_generation`` is the :attr:`generation` the caller saw before
        its failing operation; if the handle has been replaced since, another
        caller already recovered and only a retry is needed.
        """

        async with self._lock:
            if (
                observed_generation is not None
                and observed_generation != self.generation
                and self.manager.is_open
            ):
                log.info("Database already recovered by a concurrent caller, skipping repair")
                return
            await self._run(RecoveryState.REPAIRING)

    # ------------------------------------------------------------------ #
    # State machine                                                      #
    # ------------------------------------------------------------------ #
    async def _run(self, state: RecoveryState) -> None:
        repaired = False
        self._failure = None
        next_state: RecoveryState | None = state
        while next_state is not None:
            self.state = next_state
            if next_state is RecoveryState.OPEN:
                next_state = await self._step_open(repaired)
            elif next_state is RecoveryState.CHECKING:
                next_state = await self._step_check(repaired)
            elif next_state is RecoveryState.REPAIRING:
                next_state = await self._step_repair()
                repaired = True
            elif next_state is RecoveryState.HEALTHY:
                next_state = await self._step_healthy(repaired)
            else:
                await self._step_fatal()

    async def _step_open(self, repaired: bool) -> RecoveryState:
        try:
            await self.manager.open()
        except StorageError as exc:
            if exc.kind is StorageErrorKind.CORRUPTION and not repaired:
                log.warning("Database corrupted on open, attempting to repair...")
                return RecoveryState.REPAIRING
            if repaired:
                log.error("Failed to reopen database after repair: %s", exc)
                self._failure = exc
                return RecoveryState.FATAL
            raise
        return RecoveryState.CHECKING

    async def _step_check(self, repaired: bool) -> RecoveryState:
        try:
            report = await _integrity.check_integrity(self.manager.connection)
        except sqlite3.Error as exc:
            return await self._non_corruption_failure(exc, repaired, "Integrity check")
        self.last_report = report
        if report.status is _integrity.IntegrityStatus.CORRUPT:
            self._failure = report.summary()
            if repaired:
                return RecoveryState.FATAL
            log.warning("Database corrupted during initialization, attempting to repair...")
            return RecoveryState.REPAIRING
        return RecoveryState.HEALTHY

    async def _step_healthy(self, repaired: bool) -> RecoveryState | None:
        try:
            await _schema.ensure_schema(self.manager.connection)
        except sqlite3.Error as exc:
            if is_corruption_error(exc):
                self._failure = exc
                if repaired:
                    return RecoveryState.FATAL
                log.warning("Database corrupted while creating schema, attempting to repair...")
                return RecoveryState.REPAIRING
            return await self._non_corruption_failure(exc, repaired, "Schema creation")
        self.generation += 1
        if repaired:
            log.info("Database repaired and initialized: %s", self.path)
        else:
            log.info("Storage manager initialized: %s", self.path)
        return None

    async def _step_repair(self) -> RecoveryState:
        self.last_outcome = await self.repair()
        return RecoveryState.OPEN

    async def _step_fatal(self) -> None:
        await self.manager.close()
        log.error("Database repair failed for %s: %s", self.path, self._failure)
        raise RepairExhaustedError(self.path, self._failure)

    async def _non_corruption_failure(
        self, exc: sqlite3.Error, repaired: bool, action: str
    ) -> RecoveryState:
        await self.manager.close()
        if repaired:
            self._failure = exc
            return RecoveryState.FATAL
        raise wrap_error(exc, path=self.path, action=action) from exc

    # ------------------------------------------------------------------ #
    # File repair                                                        #
    # ------------------------------------------------------------------ #
    async def repair(self) -> RepairOutcome:
        """
        Close the handle, back the file up, then VACUUM it or delete it.

        Every step is best-effort; the outcome says which path was taken.
        Deleting the file lets the next open create a pristine database.
        """

        log.info("Attempting to repair database %s...", self.path)
        await self.manager.close()

        db_path = self.path
        if not db_path.exists():
            log.info("No database file at %s, a new one will be created", db_path)
            await asyncio.to_thread(self._discard, db_path)
            return RepairOutcome(RepairAction.MISSING)

        backup_path: Path | None = None
        try:
            backup_path = await asyncio.to_thread(copy_backup, db_path)
            log.info("Backed up corrupted database to: %s", backup_path)
        except OSError as exc:
            log.warning("Failed to backup corrupted database: %s", exc)

        try:
            temp = await aiosqlite.connect(db_path.as_posix(), isolation_level=None)
        except (sqlite3.Error, OSError) as exc:
            log.warning("Cannot open database for VACUUM, will try to recreate: %s", exc)
            await asyncio.to_thread(self._discard, db_path)
            return RepairOutcome(RepairAction.RECREATED, backup_path, str(exc))

        try:
            await temp.execute("VACUUM")
        except sqlite3.Error as exc:
            log.warning("VACUUM failed, will try to recreate database: %s", exc)
            await self._close_quietly(temp)
            await asyncio.to_thread(self._discard, db_path)
            return RepairOutcome(RepairAction.RECREATED, backup_path, str(exc))

        await self._close_quietly(temp)
        log.info("Database vacuum completed")
        return RepairOutcome(RepairAction.VACUUMED, backup_path)

    @staticmethod
    def _discard(db_path: Path) -> None:
        try:
            if remove_database_file(db_path):
                log.info("Removed corrupted database file, will be recreated")
        except OSError as exc:
            log.error("Failed to remove corrupted database file: %s", exc)

    @staticmethod
    async def _close_quietly(conn: aiosqlite.Connection) -> None:
        try:
            await conn.close()
        except Exception as exc:
            log.warning("Error closing temp database: %s", exc)

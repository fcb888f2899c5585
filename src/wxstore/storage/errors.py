"""Error taxonomy for the SQLite store and the mapping from raw sqlite errors."""

from __future__ import annotations

import enum
import os
import sqlite3
from pathlib import Path

__all__ = [
    "StorageErrorKind",
    "StorageError",
    "CorruptionError",
    "LockTimeoutError",
    "ConstraintViolationError",
    "RepairExhaustedError",
    "classify_error",
    "is_corruption_error",
    "wrap_error",
]

# Primary result codes from sqlite3.h
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_CORRUPT = 11
SQLITE_CONSTRAINT = 19
SQLITE_NOTADB = 26

CORRUPTION_KEYWORDS = (
    "corrupt",
    "malformed",
    "disk image",
    "not a database",
)
LOCK_KEYWORDS = (
    "database is locked",
    "database table is locked",
    "database is busy",
)
CONSTRAINT_KEYWORDS = ("constraint failed",)


class StorageErrorKind(enum.Enum):
    CORRUPTION = "corruption"
    LOCK_TIMEOUT = "lock_timeout"
    CONSTRAINT_VIOLATION = "constraint_violation"
    OTHER = "other"


def _primary_code(exc: BaseException) -> int | None:
    code = getattr(exc, "sqlite_errorcode", None)
    if code is None:
        return None
    try:
        # Extended codes carry the primary code in the low byte.
        return int(code) & 0xFF
    except (TypeError, ValueError):
        return None


def classify_error(exc: BaseException) -> StorageErrorKind:
    """
    Map ``exc`` to a :class:`StorageErrorKind`.

    The structured ``sqlite_errorcode`` is used when the interpreter provides it;
    message keywords cover older interpreters and errors re-raised as text.
    """

    if isinstance(exc, StorageError):
        return exc.kind

    code = _primary_code(exc)
    if code in (SQLITE_CORRUPT, SQLITE_NOTADB):
        return StorageErrorKind.CORRUPTION
    if code in (SQLITE_BUSY, SQLITE_LOCKED):
        return StorageErrorKind.LOCK_TIMEOUT
    if code == SQLITE_CONSTRAINT or isinstance(exc, sqlite3.IntegrityError):
        return StorageErrorKind.CONSTRAINT_VIOLATION

    message = str(exc).lower()
    if any(keyword in message for keyword in CORRUPTION_KEYWORDS):
        return StorageErrorKind.CORRUPTION
    if any(keyword in message for keyword in LOCK_KEYWORDS):
        return StorageErrorKind.LOCK_TIMEOUT
    if any(keyword in message for keyword in CONSTRAINT_KEYWORDS):
        return StorageErrorKind.CONSTRAINT_VIOLATION
    return StorageErrorKind.OTHER


def is_corruption_error(exc: BaseException) -> bool:
    return classify_error(exc) is StorageErrorKind.CORRUPTION


class StorageError(RuntimeError):
    """Failure raised by the store, tagged with its :class:`StorageErrorKind`."""

    kind = StorageErrorKind.OTHER

    def __init__(
        self,
        message: str,
        *,
        path: str | os.PathLike[str] | None = None,
        kind: StorageErrorKind | None = None,
    ):
        if kind is not None:
            self.kind = kind
        self.path = Path(path) if path is not None else None
        super().__init__(message)


class CorruptionError(StorageError):
    kind = StorageErrorKind.CORRUPTION


class LockTimeoutError(StorageError):
    kind = StorageErrorKind.LOCK_TIMEOUT


class ConstraintViolationError(StorageError):
    kind = StorageErrorKind.CONSTRAINT_VIOLATION


_ERROR_TYPES: dict[StorageErrorKind, type[StorageError]] = {
    StorageErrorKind.CORRUPTION: CorruptionError,
    StorageErrorKind.LOCK_TIMEOUT: LockTimeoutError,
    StorageErrorKind.CONSTRAINT_VIOLATION: ConstraintViolationError,
    StorageErrorKind.OTHER: StorageError,
}


def wrap_error(
    exc: BaseException,
    *,
    path: str | os.PathLike[str] | None = None,
    action: str | None = None,
) -> StorageError:
    """Return the typed :class:`StorageError` for ``exc`` (callers ``raise ... from exc``)."""

    if isinstance(exc, StorageError):
        return exc
    kind = classify_error(exc)
    prefix = f"{action} failed: " if action else ""
    return _ERROR_TYPES[kind](f"{prefix}{exc}", path=path, kind=kind)


class RepairExhaustedError(StorageError):
    """Raised when automatic repair could not produce a usable database."""

    kind = StorageErrorKind.CORRUPTION

    def __init__(self, path: str | os.PathLike[str], cause: BaseException | str | None = None):
        resolved = Path(path).resolve()
        detail = f" Error: {cause}" if cause else ""
        super().__init__(
            f"Database at {resolved} is corrupted and automatic repair failed. "
            f"Delete the file {resolved} manually and restart the service.{detail}",
            path=resolved,
        )

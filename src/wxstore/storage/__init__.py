"""Embedded SQLite storage with corruption repair and field encryption."""

from wxstore.storage.codec import Ciphertext, FieldCodec, Plaintext
from wxstore.storage.errors import (
    ConstraintViolationError,
    CorruptionError,
    LockTimeoutError,
    RepairExhaustedError,
    StorageError,
    StorageErrorKind,
    classify_error,
)
from wxstore.storage.integrity import IntegrityReport, IntegrityStatus
from wxstore.storage.repair import RecoveryState, RepairAction, RepairOutcome
from wxstore.storage.store import StorageManager

__all__ = [
    "StorageManager",
    "FieldCodec",
    "Plaintext",
    "Ciphertext",
    "StorageError",
    "StorageErrorKind",
    "CorruptionError",
    "LockTimeoutError",
    "ConstraintViolationError",
    "RepairExhaustedError",
    "classify_error",
    "IntegrityReport",
    "IntegrityStatus",
    "RecoveryState",
    "RepairAction",
    "RepairOutcome",
]

# wxstore
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Public package interface for the wxstore persistence layer."""

from wxstore.core.settings import StorageSettings
from wxstore.storage import (
    ConstraintViolationError,
    CorruptionError,
    FieldCodec,
    IntegrityReport,
    IntegrityStatus,
    LockTimeoutError,
    RepairExhaustedError,
    StorageError,
    StorageErrorKind,
    StorageManager,
)
from wxstore.storage.models import (
    DEFAULT_PROVIDER,
    AppConfig,
    Credential,
    Draft,
    PermanentAsset,
    ProviderConfig,
    PublishRecord,
    TransientAsset,
)

__all__ = [
    "StorageManager",
    "StorageSettings",
    "FieldCodec",
    "DEFAULT_PROVIDER",
    "AppConfig",
    "Credential",
    "TransientAsset",
    "PermanentAsset",
    "Draft",
    "PublishRecord",
    "ProviderConfig",
    "IntegrityReport",
    "IntegrityStatus",
    "StorageError",
    "StorageErrorKind",
    "CorruptionError",
    "LockTimeoutError",
    "ConstraintViolationError",
    "RepairExhaustedError",
]

"""
SQLite-backed storage for the publishing editor.

:class:`StorageManager` owns one :class:`ConnectionManager` and one
:class:`RepairPipeline`.  Reads go straight to the live handle; writes are
wrapped so that a corruption-classified failure runs the repair pipeline and
retries the write exactly once.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from wxstore.core.settings import StorageSettings
from wxstore.storage import integrity as _integrity
from wxstore.storage.codec import FieldCodec
from wxstore.storage.connection import ConnectionManager
from wxstore.storage.errors import (
    RepairExhaustedError,
    StorageError,
    StorageErrorKind,
    classify_error,
    wrap_error,
)
from wxstore.storage.models import (
    REFRESH_MARGIN_MS,
    AppConfig,
    Credential,
    Draft,
    PermanentAsset,
    ProviderConfig,
    PublishRecord,
    TransientAsset,
)
from wxstore.storage.repair import RepairPipeline
from wxstore.storage.sqlite import assets as _assets
from wxstore.storage.sqlite import config as _config
from wxstore.storage.sqlite import credentials as _credentials
from wxstore.storage.sqlite import drafts as _drafts
from wxstore.storage.sqlite import providers as _providers
from wxstore.storage.sqlite import publishes as _publishes

log = logging.getLogger(__name__)

__all__ = ["StorageManager"]

T = TypeVar("T")
Operation = Callable[[aiosqlite.Connection], Awaitable[T]]


class StorageManager:
    """Single-file store for configuration, credentials, media and publish state."""

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        *,
        secret_key: str | None = None,
        settings: StorageSettings | None = None,
    ):
        settings = settings or StorageSettings.from_env()
        self.settings = settings
        db_path = Path(path) if path is not None else settings.db_path
        self.codec = FieldCodec(secret_key if secret_key is not None else settings.secret_key)
        self._manager = ConnectionManager(db_path, busy_timeout_ms=settings.busy_timeout_ms)
        self._pipeline = RepairPipeline(self._manager)

    @property
    def path(self) -> Path:
        return self._manager.path

    @property
    def is_open(self) -> bool:
        return self._manager.is_open

    @property
    def pipeline(self) -> RepairPipeline:
        return self._pipeline

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def initialize(self) -> None:
        """Open, verify and create the schema, repairing a corrupted file once."""

        await self._pipeline.initialize()

    async def close(self) -> None:
        await self._manager.close()

    async def __aenter__(self) -> StorageManager:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def check_integrity(self) -> _integrity.IntegrityReport:
        conn = await self._connection()
        return await _integrity.check_integrity(conn)

    # ------------------------------------------------------------------ #
    # Execution policy                                                   #
    # ------------------------------------------------------------------ #
    async def _connection(self) -> aiosqlite.Connection:
        await self._pipeline.ensure_online()
        return self._manager.connection

    async def _attempt(self, action: str, operation: Operation[T]) -> T:
        """
        Run ``operation`` on the live handle.

        A concurrent repair may close the handle an operation is holding;
        aiosqlite then raises ``ValueError`` (or sqlite3 ``ProgrammingError``).
        If the handle was swapped, the operation runs once more on the new one.
        """
        conn = await self._connection()
        try:
            return await operation(conn)
        except (ValueError, sqlite3.ProgrammingError) as exc:
            if self._manager.owns(conn):
                raise
            log.info("Connection replaced by a repair during %s, retrying", action)

        conn = await self._connection()
        try:
            return await operation(conn)
        except (ValueError, sqlite3.ProgrammingError) as exc:
            if self._manager.owns(conn):
                raise
            raise StorageError(
                f"Failed to {action}: connection closed by a concurrent repair",
                path=self.path,
                kind=StorageErrorKind.OTHER,
            ) from exc

    async def _read(self, action: str, operation: Operation[T]) -> T:
        try:
            return await self._attempt(action, operation)
        except sqlite3.Error as exc:
            raise wrap_error(exc, path=self.path, action=action) from exc

    async def _write(self, action: str, operation: Operation[T]) -> T:
        await self._pipeline.ensure_online()
        generation = self._pipeline.generation
        try:
            return await self._attempt(action, operation)
        except sqlite3.Error as exc:
            if classify_error(exc) is not StorageErrorKind.CORRUPTION:
                raise wrap_error(exc, path=self.path, action=action) from exc
            log.warning("Database corruption detected during %s, attempting repair...", action)

        await self._pipeline.recover(generation)
        try:
            result = await self._attempt(action, operation)
        except sqlite3.Error as exc:
            log.error("Failed to %s after repair attempt: %s", action, exc)
            if classify_error(exc) is StorageErrorKind.CORRUPTION:
                raise RepairExhaustedError(self.path, exc) from exc
            raise wrap_error(exc, path=self.path, action=action) from exc
        log.info("%s succeeded after database repair", action)
        return result

    # ------------------------------------------------------------------ #
    # Config                                                             #
    # ------------------------------------------------------------------ #
    async def save_config(self, config: AppConfig) -> None:
        _config.validate_config(config)
        await self._write("save config", lambda conn: _config.save_config(conn, self.codec, config))

    async def get_config(self) -> AppConfig | None:
        return await self._read("get config", lambda conn: _config.get_config(conn, self.codec))

    async def clear_config(self) -> None:
        await self._write("clear config", _config.clear_config)

    # ------------------------------------------------------------------ #
    # Credential                                                         #
    # ------------------------------------------------------------------ #
    async def save_credential(self, credential: Credential) -> None:
        if not credential.secret:
            raise ValueError("credential secret is required")
        await self._write(
            "save credential",
            lambda conn: _credentials.save_credential(conn, self.codec, credential),
        )

    async def get_credential(self) -> Credential | None:
        return await self._read(
            "get credential", lambda conn: _credentials.get_credential(conn, self.codec)
        )

    async def get_valid_credential(self, *, margin_ms: int | None = None) -> Credential | None:
        """Return the stored credential only while it is still valid beyond the refresh margin."""

        credential = await self.get_credential()
        if credential is None:
            return None
        margin = REFRESH_MARGIN_MS if margin_ms is None else margin_ms
        return credential if credential.is_valid(margin_ms=margin) else None

    async def clear_credential(self) -> None:
        await self._write("clear credential", _credentials.clear_credential)

    # ------------------------------------------------------------------ #
    # Media                                                              #
    # ------------------------------------------------------------------ #
    async def save_asset(self, asset: TransientAsset) -> None:
        _require(asset.asset_id, "asset_id")
        await self._write("save asset", lambda conn: _assets.save_asset(conn, asset))

    async def get_asset(self, asset_id: str) -> TransientAsset | None:
        return await self._read("get asset", lambda conn: _assets.get_asset(conn, asset_id))

    async def list_assets(self, kind: str | None = None) -> list[TransientAsset]:
        return await self._read("list assets", lambda conn: _assets.list_assets(conn, kind))

    async def delete_asset(self, asset_id: str) -> bool:
        deleted = await self._write("delete asset", lambda conn: _assets.delete_asset(conn, asset_id))
        return deleted > 0

    async def save_permanent_asset(self, asset: PermanentAsset) -> None:
        _require(asset.asset_id, "asset_id")
        await self._write(
            "save permanent asset", lambda conn: _assets.save_permanent_asset(conn, asset)
        )

    async def get_permanent_asset(self, asset_id: str) -> PermanentAsset | None:
        return await self._read(
            "get permanent asset", lambda conn: _assets.get_permanent_asset(conn, asset_id)
        )

    async def list_permanent_assets(self, kind: str | None = None) -> list[PermanentAsset]:
        return await self._read(
            "list permanent assets", lambda conn: _assets.list_permanent_assets(conn, kind)
        )

    async def delete_permanent_asset(self, asset_id: str) -> bool:
        deleted = await self._write(
            "delete permanent asset", lambda conn: _assets.delete_permanent_asset(conn, asset_id)
        )
        return deleted > 0

    # ------------------------------------------------------------------ #
    # Drafts & publishing                                                #
    # ------------------------------------------------------------------ #
    async def save_draft(self, draft: Draft) -> None:
        _require(draft.draft_id, "draft_id")
        await self._write("save draft", lambda conn: _drafts.save_draft(conn, draft))

    async def get_draft(self, draft_id: str) -> Draft | None:
        return await self._read("get draft", lambda conn: _drafts.get_draft(conn, draft_id))

    async def list_drafts(self) -> list[Draft]:
        return await self._read("list drafts", _drafts.list_drafts)

    async def delete_draft(self, draft_id: str) -> bool:
        deleted = await self._write("delete draft", lambda conn: _drafts.delete_draft(conn, draft_id))
        return deleted > 0

    async def save_publish_record(self, record: PublishRecord) -> None:
        _require(record.publish_id, "publish_id")
        _require(record.external_msg_id, "external_msg_id")
        await self._write(
            "save publish record", lambda conn: _publishes.save_publish_record(conn, record)
        )

    async def get_publish_record(self, publish_id: str) -> PublishRecord | None:
        return await self._read(
            "get publish record", lambda conn: _publishes.get_publish_record(conn, publish_id)
        )

    async def list_publish_records(self, status: int | None = None) -> list[PublishRecord]:
        return await self._read(
            "list publish records", lambda conn: _publishes.list_publish_records(conn, status)
        )

    async def delete_publish_record(self, publish_id: str) -> bool:
        deleted = await self._write(
            "delete publish record",
            lambda conn: _publishes.delete_publish_record(conn, publish_id),
        )
        return deleted > 0

    # ------------------------------------------------------------------ #
    # Image-host providers                                               #
    # ------------------------------------------------------------------ #
    async def save_provider_config(self, provider_type: str, config: dict[str, Any]) -> None:
        _require(provider_type, "provider_type")
        await self._write(
            "save provider config",
            lambda conn: _providers.save_provider_config(conn, self.codec, provider_type, config),
        )

    async def get_provider_config(self, provider_type: str) -> ProviderConfig | None:
        return await self._read(
            "get provider config",
            lambda conn: _providers.get_provider_config(conn, self.codec, provider_type),
        )

    async def list_provider_configs(self) -> list[ProviderConfig]:
        return await self._read(
            "list provider configs",
            lambda conn: _providers.list_provider_configs(conn, self.codec),
        )

    async def delete_provider_config(self, provider_type: str) -> bool:
        deleted = await self._write(
            "delete provider config",
            lambda conn: _providers.delete_provider_config(conn, provider_type),
        )
        return deleted > 0

    async def set_active_provider(self, provider_type: str) -> None:
        _require(provider_type, "provider_type")
        await self._write(
            "set active provider",
            lambda conn: _providers.set_active_provider(conn, provider_type),
        )

    async def get_active_provider(self) -> str:
        return await self._read("get active provider", _providers.get_active_provider)


def _require(value: Any, name: str) -> None:
    if not value:
        raise ValueError(f"{name} is required")

"""Image-host provider configuration (``image_host_configs``) and the active provider."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiosqlite

from wxstore.storage.codec import FieldCodec
from wxstore.storage.models import DEFAULT_PROVIDER, ProviderConfig

from .utils import execute, fetch_all, fetch_one, now_ms

log = logging.getLogger(__name__)

__all__ = [
    "ACTIVE_PROVIDER_ROW_ID",
    "save_provider_config",
    "get_provider_config",
    "list_provider_configs",
    "delete_provider_config",
    "set_active_provider",
    "get_active_provider",
]

ACTIVE_PROVIDER_ROW_ID = 1


def _load_payload(codec: FieldCodec, provider_type: str, stored: str | None) -> dict[str, Any]:
    """Decrypt and parse one stored payload; unreadable payloads become ``{}``."""

    text = codec.decrypt(stored)
    if text is None:
        if stored:
            log.warning("Provider config for %s could not be decrypted", provider_type)
        return {}
    try:
        payload = json.loads(text)
    except (TypeError, json.JSONDecodeError):
        log.warning("Provider config for %s is not valid JSON", provider_type)
        return {}
    if not isinstance(payload, dict):
        log.warning("Provider config for %s is not a JSON object", provider_type)
        return {}
    return payload


def _provider_from_row(codec: FieldCodec, row: aiosqlite.Row) -> ProviderConfig:
    return ProviderConfig(
        provider_type=row["host_type"],
        config=_load_payload(codec, row["host_type"], row["config_data"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def save_provider_config(
    conn: aiosqlite.Connection,
    codec: FieldCodec,
    provider_type: str,
    config: dict[str, Any],
) -> None:
    """Upsert ``config`` for ``provider_type`` keeping the first ``created_at``."""

    now = now_ms()
    payload = json.dumps(config, ensure_ascii=False)
    await execute(
        conn,
        """
        INSERT OR REPLACE INTO image_host_configs (host_type, config_data, created_at, updated_at)
        VALUES (
            ?,
            ?,
            COALESCE((SELECT created_at FROM image_host_configs WHERE host_type = ?), ?),
            ?
        )
        """,
        (provider_type, codec.encrypt(payload), provider_type, now, now),
    )


async def get_provider_config(
    conn: aiosqlite.Connection, codec: FieldCodec, provider_type: str
) -> ProviderConfig | None:
    row = await fetch_one(
        conn, "SELECT * FROM image_host_configs WHERE host_type = ?", (provider_type,)
    )
    return _provider_from_row(codec, row) if row is not None else None


async def list_provider_configs(conn: aiosqlite.Connection, codec: FieldCodec) -> list[ProviderConfig]:
    rows = await fetch_all(conn, "SELECT * FROM image_host_configs ORDER BY host_type")
    return [_provider_from_row(codec, row) for row in rows]


async def delete_provider_config(conn: aiosqlite.Connection, provider_type: str) -> int:
    return await execute(
        conn, "DELETE FROM image_host_configs WHERE host_type = ?", (provider_type,)
    )


async def set_active_provider(conn: aiosqlite.Connection, provider_type: str) -> None:
    await execute(
        conn,
        "INSERT OR REPLACE INTO image_host_settings (id, current_host, updated_at) VALUES (?, ?, ?)",
        (ACTIVE_PROVIDER_ROW_ID, provider_type, now_ms()),
    )


async def get_active_provider(conn: aiosqlite.Connection) -> str:
    row = await fetch_one(
        conn, "SELECT current_host FROM image_host_settings WHERE id = ?", (ACTIVE_PROVIDER_ROW_ID,)
    )
    if row is None or not row["current_host"]:
        return DEFAULT_PROVIDER
    return row["current_host"]

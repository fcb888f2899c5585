"""Account configuration row (``config``, fixed ``id = 1``)."""

from __future__ import annotations

import aiosqlite

from wxstore.storage.codec import FieldCodec
from wxstore.storage.models import AppConfig

from .utils import execute, fetch_one, now_ms

__all__ = ["CONFIG_ROW_ID", "validate_config", "save_config", "get_config", "clear_config"]

CONFIG_ROW_ID = 1


def validate_config(config: AppConfig) -> None:
    if not config.app_id:
        raise ValueError("app_id is required")
    if not config.app_secret:
        raise ValueError("app_secret is required")


async def save_config(conn: aiosqlite.Connection, codec: FieldCodec, config: AppConfig) -> None:
    """Replace the single configuration row."""

    now = now_ms()
    await execute(
        conn,
        """
        INSERT OR REPLACE INTO config (id, app_id, app_secret, token, encoding_aes_key, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            CONFIG_ROW_ID,
            config.app_id,
            codec.encrypt(config.app_secret),
            codec.encrypt(config.token),
            codec.encrypt(config.encoding_key),
            now,
            now,
        ),
    )


async def get_config(conn: aiosqlite.Connection, codec: FieldCodec) -> AppConfig | None:
    row = await fetch_one(conn, "SELECT * FROM config WHERE id = ?", (CONFIG_ROW_ID,))
    if row is None:
        return None
    return AppConfig(
        app_id=row["app_id"],
        app_secret=codec.decrypt(row["app_secret"]),
        token=codec.decrypt(row["token"]),
        encoding_key=codec.decrypt(row["encoding_aes_key"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def clear_config(conn: aiosqlite.Connection) -> int:
    return await execute(conn, "DELETE FROM config WHERE id = ?", (CONFIG_ROW_ID,))

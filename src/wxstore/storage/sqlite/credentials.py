"""Access credential persistence (``access_tokens``, at most one row)."""

from __future__ import annotations

import aiosqlite

from wxstore.storage.codec import FieldCodec
from wxstore.storage.models import Credential

from .utils import execute, fetch_one, now_ms, transaction

__all__ = ["save_credential", "get_credential", "clear_credential"]


async def save_credential(conn: aiosqlite.Connection, codec: FieldCodec, credential: Credential) -> None:
    """Drop any stored credential and insert ``credential`` in one transaction."""

    created_at = credential.created_at if credential.created_at is not None else now_ms()
    async with transaction(conn):
        await execute(conn, "DELETE FROM access_tokens")
        await execute(
            conn,
            """
            INSERT INTO access_tokens (access_token, expires_in, expires_at, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                codec.encrypt(credential.secret),
                int(credential.ttl_seconds),
                int(credential.expires_at_ms),
                created_at,
            ),
        )


async def get_credential(conn: aiosqlite.Connection, codec: FieldCodec) -> Credential | None:
    row = await fetch_one(
        conn, "SELECT * FROM access_tokens ORDER BY created_at DESC, id DESC LIMIT 1"
    )
    if row is None:
        return None
    return Credential(
        secret=codec.decrypt(row["access_token"]),
        ttl_seconds=row["expires_in"],
        expires_at_ms=row["expires_at"],
        created_at=row["created_at"],
    )


async def clear_credential(conn: aiosqlite.Connection) -> int:
    return await execute(conn, "DELETE FROM access_tokens")

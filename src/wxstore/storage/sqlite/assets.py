"""Media metadata for transient (``media``) and permanent (``permanent_media``) assets."""

from __future__ import annotations

import aiosqlite

from wxstore.storage.models import PermanentAsset, TransientAsset

from .utils import execute, fetch_all, fetch_one

__all__ = [
    "save_asset",
    "get_asset",
    "list_assets",
    "delete_asset",
    "save_permanent_asset",
    "get_permanent_asset",
    "list_permanent_assets",
    "delete_permanent_asset",
]


def _transient_from_row(row: aiosqlite.Row) -> TransientAsset:
    return TransientAsset(
        asset_id=row["media_id"],
        kind=row["type"],
        created_at=row["created_at"],
        url=row["url"],
    )


def _permanent_from_row(row: aiosqlite.Row) -> PermanentAsset:
    return PermanentAsset(
        asset_id=row["media_id"],
        kind=row["type"],
        name=row["name"],
        created_at=row["created_at"],
        updated_at=row["update_time"],
        url=row["url"],
    )


# ---- Transient media --------------------------------------------------------


async def save_asset(conn: aiosqlite.Connection, asset: TransientAsset) -> None:
    await execute(
        conn,
        "INSERT OR REPLACE INTO media (media_id, type, created_at, url) VALUES (?, ?, ?, ?)",
        (asset.asset_id, asset.kind, int(asset.created_at), asset.url or None),
    )


async def get_asset(conn: aiosqlite.Connection, asset_id: str) -> TransientAsset | None:
    row = await fetch_one(conn, "SELECT * FROM media WHERE media_id = ?", (asset_id,))
    return _transient_from_row(row) if row is not None else None


async def list_assets(conn: aiosqlite.Connection, kind: str | None = None) -> list[TransientAsset]:
    if kind:
        rows = await fetch_all(
            conn, "SELECT * FROM media WHERE type = ? ORDER BY created_at DESC", (kind,)
        )
    else:
        rows = await fetch_all(conn, "SELECT * FROM media ORDER BY created_at DESC")
    return [_transient_from_row(row) for row in rows]


async def delete_asset(conn: aiosqlite.Connection, asset_id: str) -> int:
    return await execute(conn, "DELETE FROM media WHERE media_id = ?", (asset_id,))


# ---- Permanent media --------------------------------------------------------


async def save_permanent_asset(conn: aiosqlite.Connection, asset: PermanentAsset) -> None:
    await execute(
        conn,
        """
        INSERT OR REPLACE INTO permanent_media (media_id, type, name, created_at, update_time, url)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            asset.asset_id,
            asset.kind,
            asset.name,
            int(asset.created_at),
            asset.updated_at,
            asset.url or None,
        ),
    )


async def get_permanent_asset(conn: aiosqlite.Connection, asset_id: str) -> PermanentAsset | None:
    row = await fetch_one(conn, "SELECT * FROM permanent_media WHERE media_id = ?", (asset_id,))
    return _permanent_from_row(row) if row is not None else None


async def list_permanent_assets(
    conn: aiosqlite.Connection, kind: str | None = None
) -> list[PermanentAsset]:
    if kind:
        rows = await fetch_all(
            conn,
            "SELECT * FROM permanent_media WHERE type = ? ORDER BY created_at DESC",
            (kind,),
        )
    else:
        rows = await fetch_all(conn, "SELECT * FROM permanent_media ORDER BY created_at DESC")
    return [_permanent_from_row(row) for row in rows]


async def delete_permanent_asset(conn: aiosqlite.Connection, asset_id: str) -> int:
    return await execute(conn, "DELETE FROM permanent_media WHERE media_id = ?", (asset_id,))

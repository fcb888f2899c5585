"""Draft persistence (``drafts``)."""

from __future__ import annotations

import aiosqlite

from wxstore.storage.models import Draft

from .utils import execute, fetch_all, fetch_one

__all__ = ["save_draft", "get_draft", "list_drafts", "delete_draft"]


def _draft_from_row(row: aiosqlite.Row) -> Draft:
    return Draft(draft_id=row["media_id"], content=row["content"], updated_at=row["update_time"])


async def save_draft(conn: aiosqlite.Connection, draft: Draft) -> None:
    await execute(
        conn,
        "INSERT OR REPLACE INTO drafts (media_id, content, update_time) VALUES (?, ?, ?)",
        (draft.draft_id, draft.content, int(draft.updated_at)),
    )


async def get_draft(conn: aiosqlite.Connection, draft_id: str) -> Draft | None:
    row = await fetch_one(conn, "SELECT * FROM drafts WHERE media_id = ?", (draft_id,))
    return _draft_from_row(row) if row is not None else None


async def list_drafts(conn: aiosqlite.Connection) -> list[Draft]:
    rows = await fetch_all(conn, "SELECT * FROM drafts ORDER BY update_time DESC")
    return [_draft_from_row(row) for row in rows]


async def delete_draft(conn: aiosqlite.Connection, draft_id: str) -> int:
    return await execute(conn, "DELETE FROM drafts WHERE media_id = ?", (draft_id,))

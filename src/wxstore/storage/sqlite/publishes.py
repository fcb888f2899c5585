"""Publish record persistence (``publishes``)."""

from __future__ import annotations

import aiosqlite

from wxstore.storage.models import PublishRecord

from .utils import execute, fetch_all, fetch_one

__all__ = [
    "save_publish_record",
    "get_publish_record",
    "list_publish_records",
    "delete_publish_record",
]


def _record_from_row(row: aiosqlite.Row) -> PublishRecord:
    return PublishRecord(
        publish_id=row["publish_id"],
        external_msg_id=row["msg_data_id"],
        article_index=row["idx"],
        article_url=row["article_url"],
        content=row["content"],
        published_at=row["publish_time"],
        status=row["publish_status"],
    )


async def save_publish_record(conn: aiosqlite.Connection, record: PublishRecord) -> None:
    await execute(
        conn,
        """
        INSERT OR REPLACE INTO publishes
            (publish_id, msg_data_id, idx, article_url, content, publish_time, publish_status)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.publish_id,
            record.external_msg_id,
            record.article_index,
            record.article_url,
            record.content,
            int(record.published_at),
            int(record.status),
        ),
    )


async def get_publish_record(conn: aiosqlite.Connection, publish_id: str) -> PublishRecord | None:
    row = await fetch_one(conn, "SELECT * FROM publishes WHERE publish_id = ?", (publish_id,))
    return _record_from_row(row) if row is not None else None


async def list_publish_records(
    conn: aiosqlite.Connection, status: int | None = None
) -> list[PublishRecord]:
    if status is not None:
        rows = await fetch_all(
            conn,
            "SELECT * FROM publishes WHERE publish_status = ? ORDER BY publish_time DESC",
            (int(status),),
        )
    else:
        rows = await fetch_all(conn, "SELECT * FROM publishes ORDER BY publish_time DESC")
    return [_record_from_row(row) for row in rows]


async def delete_publish_record(conn: aiosqlite.Connection, publish_id: str) -> int:
    return await execute(conn, "DELETE FROM publishes WHERE publish_id = ?", (publish_id,))

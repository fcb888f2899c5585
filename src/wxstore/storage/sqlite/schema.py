"""
Schema definitions and connection pragmas for the wxstore database.
"""

from __future__ import annotations

import aiosqlite

from wxstore.core.settings import DEFAULT_BUSY_TIMEOUT_MS

__all__ = [
    "TABLES",
    "SCHEMA_STATEMENTS",
    "apply_default_pragmas",
    "ensure_schema",
    "list_tables",
    "missing_tables",
]

SCHEMA_STATEMENTS: dict[str, str] = {
    "config": """
        CREATE TABLE IF NOT EXISTS config (
            id INTEGER PRIMARY KEY,
            app_id TEXT NOT NULL,
            app_secret TEXT NOT NULL,
            token TEXT,
            encoding_aes_key TEXT,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
    "access_tokens": """
        CREATE TABLE IF NOT EXISTS access_tokens (
            id INTEGER PRIMARY KEY,
            access_token TEXT NOT NULL,
            expires_in INTEGER NOT NULL,
            expires_at INTEGER NOT NULL,
            created_at INTEGER NOT NULL
        )
    """,
    "media": """
        CREATE TABLE IF NOT EXISTS media (
            media_id TEXT PRIMARY KEY,
            type TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            url TEXT
        )
    """,
    "permanent_media": """
        CREATE TABLE IF NOT EXISTS permanent_media (
            media_id TEXT PRIMARY KEY,
            type TEXT NOT NULL,
            name TEXT,
            created_at INTEGER NOT NULL,
            update_time INTEGER,
            url TEXT
        )
    """,
    "drafts": """
        CREATE TABLE IF NOT EXISTS drafts (
            media_id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            update_time INTEGER NOT NULL
        )
    """,
    "publishes": """
        CREATE TABLE IF NOT EXISTS publishes (
            publish_id TEXT PRIMARY KEY,
            msg_data_id TEXT NOT NULL,
            idx INTEGER,
            article_url TEXT,
            content TEXT,
            publish_time INTEGER NOT NULL,
            publish_status INTEGER NOT NULL
        )
    """,
    "image_host_configs": """
        CREATE TABLE IF NOT EXISTS image_host_configs (
            host_type TEXT PRIMARY KEY,
            config_data TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
    "image_host_settings": """
        CREATE TABLE IF NOT EXISTS image_host_settings (
            id INTEGER PRIMARY KEY,
            current_host TEXT NOT NULL DEFAULT 'wechat',
            updated_at INTEGER NOT NULL
        )
    """,
}

TABLES = tuple(SCHEMA_STATEMENTS)


async def apply_default_pragmas(
    conn: aiosqlite.Connection, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> None:
    """
    Apply stability pragmas for the local database file.

    WAL lets readers proceed while a writer is active, and NORMAL synchronous
    is safe with WAL. The busy timeout makes lock contention wait before
    failing with ``database is locked``.
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA synchronous = NORMAL;")
    await conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    await conn.execute("PRAGMA foreign_keys = ON;")


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """Create every table that does not exist yet; safe to call repeatedly."""

    for statement in SCHEMA_STATEMENTS.values():
        await conn.execute(statement)


async def list_tables(conn: aiosqlite.Connection) -> set[str]:
    rows = await conn.execute_fetchall(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    )
    return {row[0] for row in rows}


async def missing_tables(conn: aiosqlite.Connection) -> list[str]:
    present = await list_tables(conn)
    return [name for name in TABLES if name not in present]

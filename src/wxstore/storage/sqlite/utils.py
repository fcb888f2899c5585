"""
Query helpers shared by the per-entity accessor modules.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

__all__ = ["now_ms", "fetch_one", "fetch_all", "execute", "transaction"]

Params = Sequence[Any] | None


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""

    return int(time.time() * 1000)


async def fetch_one(conn: aiosqlite.Connection, sql: str, params: Params = None) -> aiosqlite.Row | None:
    async with conn.execute(sql, tuple(params or ())) as cursor:
        return await cursor.fetchone()


async def fetch_all(conn: aiosqlite.Connection, sql: str, params: Params = None) -> Iterable[aiosqlite.Row]:
    return await conn.execute_fetchall(sql, tuple(params or ()))


async def execute(conn: aiosqlite.Connection, sql: str, params: Params = None) -> int:
    """Run a single statement and return the number of affected rows."""

    async with conn.execute(sql, tuple(params or ())) as cursor:
        return cursor.rowcount


@asynccontextmanager
async def transaction(
    conn: aiosqlite.Connection,
    *,
    begin: str = "BEGIN IMMEDIATE",
) -> AsyncIterator[aiosqlite.Connection]:
    """
    Transaction wrapper that commits on success and rolls back on error.
    Uses BEGIN IMMEDIATE by default so the write lock is taken up front.
    """

    await conn.execute(begin)
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            await conn.execute("ROLLBACK")
        raise
    await conn.execute("COMMIT")

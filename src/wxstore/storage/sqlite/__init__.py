"""
Per-entity SQL accessors for the wxstore database.

Each module takes an open ``aiosqlite.Connection`` (and a
:class:`~wxstore.storage.codec.FieldCodec` where it stores encrypted
fields); connection lifecycle and repair live in
:mod:`wxstore.storage.store`.
"""

from __future__ import annotations

__all__: list[str] = []

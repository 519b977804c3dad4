"""Persistent storage for the channels the Discord adapter moderates."""

from __future__ import annotations

from typing import List

import aiosqlite


class MonitoredChannelRepo:
    """Low-level CRUD for the ``monitored_channels`` table."""

    @staticmethod
    async def add(conn: aiosqlite.Connection, channel_id: int, added_at: int) -> None:
        await conn.execute(
            "INSERT OR IGNORE INTO monitored_channels (channel_id, added_at) VALUES (?, ?)",
            (channel_id, added_at),
        )

    @staticmethod
    async def remove(conn: aiosqlite.Connection, channel_id: int) -> None:
        await conn.execute("DELETE FROM monitored_channels WHERE channel_id = ?", (channel_id,))

    @staticmethod
    async def get_all(conn: aiosqlite.Connection) -> List[int]:
        cursor = await conn.execute("SELECT channel_id FROM monitored_channels ORDER BY added_at, channel_id")
        rows = await cursor.fetchall()
        return [int(row[0]) for row in rows]

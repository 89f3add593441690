"""
Persistent storage for bot-managed slowmodes.

``slowmode_channels`` holds the channels that have a bot slowmode and its
length; ``slowmode_users`` holds, per channel, the users who posted and
may not post again until ``expires_at`` (unix seconds).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import aiosqlite

from zeppelin.util.logger import get_logger

logger = get_logger("slowmode_storage")


@dataclass
class SlowmodeChannelRecord:
    """A single row from the ``slowmode_channels`` table."""
    guild_id: int
    channel_id: int
    slowmode_seconds: int


@dataclass
class SlowmodeUserRecord:
    """A single row from the ``slowmode_users`` table."""
    guild_id: int
    channel_id: int
    user_id: int
    expires_at: int   # unix seconds (UTC)


def _user_record(row) -> SlowmodeUserRecord:
    return SlowmodeUserRecord(guild_id=row[0], channel_id=row[1], user_id=row[2], expires_at=row[3])


class SlowmodeRepo:
    """Low-level CRUD for the ``slowmode_channels`` and ``slowmode_users`` tables."""

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    @staticmethod
    async def set_channel_slowmode(conn: aiosqlite.Connection, guild_id: int, channel_id: int, seconds: int) -> None:
        await conn.execute(
            """
            INSERT INTO slowmode_channels (guild_id, channel_id, slowmode_seconds)
            VALUES (?, ?, ?)
            ON CONFLICT(guild_id, channel_id) DO UPDATE SET
                slowmode_seconds = excluded.slowmode_seconds
            """,
            (guild_id, channel_id, seconds),
        )

    @staticmethod
    async def delete_channel_slowmode(conn: aiosqlite.Connection, guild_id: int, channel_id: int) -> None:
        await conn.execute(
            "DELETE FROM slowmode_channels WHERE guild_id = ? AND channel_id = ?",
            (guild_id, channel_id),
        )

    @staticmethod
    async def get_channel_slowmode(
        conn: aiosqlite.Connection, guild_id: int, channel_id: int
    ) -> Optional[SlowmodeChannelRecord]:
        cursor = await conn.execute(
            "SELECT guild_id, channel_id, slowmode_seconds FROM slowmode_channels "
            "WHERE guild_id = ? AND channel_id = ?",
            (guild_id, channel_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return SlowmodeChannelRecord(guild_id=row[0], channel_id=row[1], slowmode_seconds=row[2])

    @staticmethod
    async def get_channel_slowmodes(conn: aiosqlite.Connection, guild_id: int) -> List[SlowmodeChannelRecord]:
        cursor = await conn.execute(
            "SELECT guild_id, channel_id, slowmode_seconds FROM slowmode_channels WHERE guild_id = ?",
            (guild_id,),
        )
        rows = await cursor.fetchall()
        return [SlowmodeChannelRecord(guild_id=row[0], channel_id=row[1], slowmode_seconds=row[2]) for row in rows]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @staticmethod
    async def add_user_slowmode(
        conn: aiosqlite.Connection, guild_id: int, channel_id: int, user_id: int, expires_at: int
    ) -> None:
        await conn.execute(
            """
            INSERT INTO slowmode_users (guild_id, channel_id, user_id, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id, channel_id, user_id) DO UPDATE SET
                expires_at = excluded.expires_at
            """,
            (guild_id, channel_id, user_id, expires_at),
        )

    @staticmethod
    async def delete_user_slowmode(conn: aiosqlite.Connection, guild_id: int, channel_id: int, user_id: int) -> None:
        await conn.execute(
            "DELETE FROM slowmode_users WHERE guild_id = ? AND channel_id = ? AND user_id = ?",
            (guild_id, channel_id, user_id),
        )

    @staticmethod
    async def get_user_slowmode(
        conn: aiosqlite.Connection, guild_id: int, channel_id: int, user_id: int
    ) -> Optional[SlowmodeUserRecord]:
        cursor = await conn.execute(
            "SELECT guild_id, channel_id, user_id, expires_at FROM slowmode_users "
            "WHERE guild_id = ? AND channel_id = ? AND user_id = ?",
            (guild_id, channel_id, user_id),
        )
        row = await cursor.fetchone()
        return _user_record(row) if row is not None else None

    @staticmethod
    async def get_channel_user_slowmodes(
        conn: aiosqlite.Connection, guild_id: int, channel_id: int
    ) -> List[SlowmodeUserRecord]:
        cursor = await conn.execute(
            "SELECT guild_id, channel_id, user_id, expires_at FROM slowmode_users "
            "WHERE guild_id = ? AND channel_id = ?",
            (guild_id, channel_id),
        )
        return [_user_record(row) for row in await cursor.fetchall()]

    @staticmethod
    async def get_expired_user_slowmodes(conn: aiosqlite.Connection, guild_id: int, now: int) -> List[SlowmodeUserRecord]:
        """Return all user slowmodes of the guild where ``expires_at <= now`` (unix seconds)."""
        cursor = await conn.execute(
            "SELECT guild_id, channel_id, user_id, expires_at FROM slowmode_users "
            "WHERE guild_id = ? AND expires_at <= ?",
            (guild_id, now),
        )
        return [_user_record(row) for row in await cursor.fetchall()]

"""Persistent storage for voice channel alerts (``vc_alerts``)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import aiosqlite

from zeppelin.util.logger import get_logger

logger = get_logger("vc_alerts_storage")

_COLUMNS = "id, guild_id, requestor_id, user_id, channel_id, expires_at, body, active"


@dataclass
class VCAlertRecord:
    """A single row from the ``vc_alerts`` table."""
    id: int
    guild_id: int
    requestor_id: int
    user_id: int
    channel_id: int
    expires_at: int   # unix seconds (UTC)
    body: str
    active: bool


def _record(row) -> VCAlertRecord:
    return VCAlertRecord(
        id=row[0],
        guild_id=row[1],
        requestor_id=row[2],
        user_id=row[3],
        channel_id=row[4],
        expires_at=row[5],
        body=row[6],
        active=bool(row[7]),
    )


class VCAlertsRepo:
    """Low-level CRUD for the ``vc_alerts`` table."""

    @staticmethod
    async def add(
        conn: aiosqlite.Connection,
        guild_id: int,
        requestor_id: int,
        user_id: int,
        channel_id: int,
        expires_at: int,
        body: str,
        active: bool,
    ) -> int:
        """Insert an alert and return its id."""
        cursor = await conn.execute(
            "INSERT INTO vc_alerts (guild_id, requestor_id, user_id, channel_id, expires_at, body, active) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (guild_id, requestor_id, user_id, channel_id, expires_at, body, int(active)),
        )
        return cursor.lastrowid

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: int, alert_id: int) -> None:
        await conn.execute("DELETE FROM vc_alerts WHERE guild_id = ? AND id = ?", (guild_id, alert_id))

    @staticmethod
    async def delete_for_user(conn: aiosqlite.Connection, guild_id: int, user_id: int) -> None:
        await conn.execute("DELETE FROM vc_alerts WHERE guild_id = ? AND user_id = ?", (guild_id, user_id))

    @staticmethod
    async def delete_expired(conn: aiosqlite.Connection, guild_id: int, now: int) -> None:
        await conn.execute("DELETE FROM vc_alerts WHERE guild_id = ? AND expires_at <= ?", (guild_id, now))

    @staticmethod
    async def get_all(conn: aiosqlite.Connection, guild_id: int) -> List[VCAlertRecord]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM vc_alerts WHERE guild_id = ? ORDER BY expires_at ASC, id ASC",
            (guild_id,),
        )
        return [_record(row) for row in await cursor.fetchall()]

    @staticmethod
    async def get_by_user(conn: aiosqlite.Connection, guild_id: int, user_id: int) -> List[VCAlertRecord]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM vc_alerts WHERE guild_id = ? AND user_id = ? ORDER BY expires_at ASC, id ASC",
            (guild_id, user_id),
        )
        return [_record(row) for row in await cursor.fetchall()]

    @staticmethod
    async def get_by_requestor(conn: aiosqlite.Connection, guild_id: int, requestor_id: int) -> List[VCAlertRecord]:
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM vc_alerts WHERE guild_id = ? AND requestor_id = ? ORDER BY expires_at ASC, id ASC",
            (guild_id, requestor_id),
        )
        return [_record(row) for row in await cursor.fetchall()]

"""
Database schema initialization and version tracking.

Timestamps are stored as INTEGER unix seconds so expiry comparisons are
plain integer comparisons.
"""

import aiosqlite
from zeppelin.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables and indexes used by the plugins."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables and indexes if they do not exist.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Channels with a bot-managed slowmode
        await db.execute("""
            CREATE TABLE IF NOT EXISTS slowmode_channels (
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                slowmode_seconds INTEGER NOT NULL,
                PRIMARY KEY (guild_id, channel_id)
            )
        """)

        # Users currently held back by a bot-managed slowmode
        await db.execute("""
            CREATE TABLE IF NOT EXISTS slowmode_users (
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                expires_at INTEGER NOT NULL,
                PRIMARY KEY (guild_id, channel_id, user_id)
            )
        """)

        # Voice channel alerts requested through the locate_user plugin
        await db.execute("""
            CREATE TABLE IF NOT EXISTS vc_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                requestor_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                expires_at INTEGER NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                active INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_slowmode_users_expiry ON slowmode_users(guild_id, expires_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_vc_alerts_user ON vc_alerts(guild_id, user_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_vc_alerts_expiry ON vc_alerts(guild_id, expires_at)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

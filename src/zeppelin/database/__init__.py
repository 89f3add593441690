"""
SQLite persistence for Zeppelin.

- **db_connection.py**: the single long-lived aiosqlite connection.
- **db_schema.py**: table and index creation.
- **slowmode_repo.py**: bot-managed channel slowmodes and per-user slowmode expiries.
- **vc_alerts_repo.py**: voice channel alerts for the locate_user plugin.
"""

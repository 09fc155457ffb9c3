"""
Database Schema Module
======================

Table definitions for guard policies and lockdown snapshots.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bastion.core.database.manager import DatabaseManager


class SchemaMixin:
    """Mixin for database schema initialization."""

    def _init_tables(self: "DatabaseManager") -> None:
        """
        Initialize all database tables.

        DESIGN: Tables are created if not exist, allowing safe restarts.
        """
        conn = self._ensure_connection()
        cursor = conn.cursor()

        # -----------------------------------------------------------------
        # Guard Policy Table
        # DESIGN: One row per guild per category ('raid' / 'nuke').
        # A missing row means "use the documented default".
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS guard_policy (
                guild_id INTEGER NOT NULL,
                category TEXT NOT NULL,
                enabled INTEGER NOT NULL,
                threshold INTEGER NOT NULL,
                window_seconds INTEGER NOT NULL,
                cooldown_seconds INTEGER NOT NULL,
                auto_lock INTEGER NOT NULL DEFAULT 0,
                auto_ban INTEGER NOT NULL DEFAULT 0,
                burst_limit INTEGER,
                updated_at REAL NOT NULL,
                PRIMARY KEY (guild_id, category)
            )
        """)

        # -----------------------------------------------------------------
        # Guard Whitelist Table
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS guard_whitelist (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                added_by INTEGER,
                added_at REAL NOT NULL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)

        # -----------------------------------------------------------------
        # Lockdown State Table
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lockdown_state (
                guild_id INTEGER PRIMARY KEY,
                locked_at REAL NOT NULL,
                locked_by INTEGER,
                reason TEXT,
                channel_count INTEGER DEFAULT 0
            )
        """)

        # -----------------------------------------------------------------
        # Lockdown Overwrites Table
        # DESIGN: Exact @everyone overwrite per channel before lockdown.
        # had_overwrite = 0 means the channel had no overwrite at all.
        # -----------------------------------------------------------------
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lockdown_overwrites (
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                had_overwrite INTEGER NOT NULL,
                allow_value INTEGER NOT NULL DEFAULT 0,
                deny_value INTEGER NOT NULL DEFAULT 0,
                saved_at REAL NOT NULL,
                PRIMARY KEY (guild_id, channel_id)
            )
        """)

        conn.commit()

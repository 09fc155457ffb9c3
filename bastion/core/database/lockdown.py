"""
Bastion - Database Lockdown Operations Module
=============================================

Lockdown state and per-channel overwrite snapshots.
"""

import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.core.database.manager import DatabaseManager


class LockdownMixin:
    """Mixin for lockdown database operations."""

    # =========================================================================
    # Lockdown State
    # =========================================================================

    def start_lockdown(
        self: "DatabaseManager",
        guild_id: int,
        locked_by: Optional[int],
        reason: Optional[str] = None,
        channel_count: int = 0,
    ) -> None:
        """
        Record a server lockdown.

        Args:
            guild_id: Guild being locked.
            locked_by: User (or the bot) that initiated the lockdown.
            reason: Reason for lockdown.
            channel_count: Number of channels locked.
        """
        self.execute(
            """INSERT OR REPLACE INTO lockdown_state
               (guild_id, locked_at, locked_by, reason, channel_count)
               VALUES (?, ?, ?, ?, ?)""",
            (guild_id, time.time(), locked_by, reason, channel_count),
        )

        logger.tree("Lockdown Started", [
            ("Guild ID", str(guild_id)),
            ("Locked By", str(locked_by)),
            ("Channels", str(channel_count)),
        ], emoji="🔒")

    def end_lockdown(self: "DatabaseManager", guild_id: int) -> None:
        """End a server lockdown and clear saved overwrites."""
        self.execute("DELETE FROM lockdown_state WHERE guild_id = ?", (guild_id,))
        self.execute("DELETE FROM lockdown_overwrites WHERE guild_id = ?", (guild_id,))

        logger.tree("Lockdown Ended", [
            ("Guild ID", str(guild_id)),
        ], emoji="🔓")

    def is_locked(self: "DatabaseManager", guild_id: int) -> bool:
        row = self.fetchone(
            "SELECT 1 FROM lockdown_state WHERE guild_id = ?",
            (guild_id,),
        )
        return row is not None

    def get_lockdown_state(self: "DatabaseManager", guild_id: int) -> Optional[Dict[str, Any]]:
        row = self.fetchone(
            "SELECT * FROM lockdown_state WHERE guild_id = ?",
            (guild_id,),
        )
        return dict(row) if row else None

    # =========================================================================
    # Channel Overwrite Snapshots
    # =========================================================================

    def save_channel_overwrite(
        self: "DatabaseManager",
        guild_id: int,
        channel_id: int,
        had_overwrite: bool,
        allow_value: int,
        deny_value: int,
    ) -> bool:
        """
        Save the @everyone overwrite a channel had before it was locked.

        DESIGN: Only the first snapshot per lockdown is kept, so locking an
        already-snapshotted channel can never overwrite the true original.

        Returns:
            True if a new snapshot was written, False if one already existed.
        """
        cursor = self.execute(
            """INSERT OR IGNORE INTO lockdown_overwrites
               (guild_id, channel_id, had_overwrite, allow_value, deny_value, saved_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (guild_id, channel_id, int(had_overwrite), allow_value, deny_value, time.time()),
        )

        inserted = cursor.rowcount == 1
        if inserted:
            logger.debug("Channel Overwrite Saved", [
                ("Channel ID", str(channel_id)),
                ("Had Overwrite", str(had_overwrite)),
            ])
        return inserted

    def get_channel_overwrites(self: "DatabaseManager", guild_id: int) -> List[Dict[str, Any]]:
        """Get all saved channel overwrites for a guild."""
        rows = self.fetchall(
            "SELECT * FROM lockdown_overwrites WHERE guild_id = ?",
            (guild_id,),
        )
        result = []
        for row in rows:
            record = dict(row)
            record["had_overwrite"] = bool(record["had_overwrite"])
            result.append(record)
        return result

    def clear_channel_overwrite(self: "DatabaseManager", guild_id: int, channel_id: int) -> None:
        self.execute(
            "DELETE FROM lockdown_overwrites WHERE guild_id = ? AND channel_id = ?",
            (guild_id, channel_id),
        )

    def clear_lockdown_permissions(self: "DatabaseManager", guild_id: int) -> None:
        """Clear saved channel overwrites for a guild."""
        self.execute("DELETE FROM lockdown_overwrites WHERE guild_id = ?", (guild_id,))

        logger.debug("Lockdown Permissions Cleared", [
            ("Guild ID", str(guild_id)),
        ])


__all__ = ["LockdownMixin"]

"""
Bastion - Database Guard Policy Module
======================================

Per-guild guard policy rows and whitelist operations.
"""

import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from bastion.core.logger import logger

if TYPE_CHECKING:
    from bastion.core.database.manager import DatabaseManager


class GuardPolicyMixin:
    """Mixin for guard policy and whitelist database operations."""

    # =========================================================================
    # Policy Rows
    # =========================================================================

    def get_guard_policy_row(
        self: "DatabaseManager",
        guild_id: int,
        category: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Get the stored policy row for a guild and category.

        Returns:
            Row as a dict, or None if the guild never configured it.
        """
        row = self.fetchone(
            "SELECT * FROM guard_policy WHERE guild_id = ? AND category = ?",
            (guild_id, category),
        )
        return dict(row) if row else None

    def set_guard_policy(
        self: "DatabaseManager",
        guild_id: int,
        category: str,
        enabled: bool,
        threshold: int,
        window_seconds: int,
        cooldown_seconds: int,
        auto_lock: bool = False,
        auto_ban: bool = False,
        burst_limit: Optional[int] = None,
    ) -> None:
        """Insert or replace a guild's policy for one category."""
        self.execute(
            """INSERT OR REPLACE INTO guard_policy
               (guild_id, category, enabled, threshold, window_seconds,
                cooldown_seconds, auto_lock, auto_ban, burst_limit, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                guild_id, category, int(enabled), threshold, window_seconds,
                cooldown_seconds, int(auto_lock), int(auto_ban), burst_limit, time.time(),
            ),
        )

        logger.tree("Guard Policy Saved", [
            ("Guild ID", str(guild_id)),
            ("Category", category),
            ("Enabled", str(enabled)),
            ("Threshold", f"{threshold} / {window_seconds}s"),
            ("Auto-Lock", str(auto_lock)),
            ("Auto-Ban", str(auto_ban)),
        ], emoji="🛡️")

    def delete_guard_policy(self: "DatabaseManager", guild_id: int, category: str) -> None:
        """Remove a guild's policy row so the default applies again."""
        self.execute(
            "DELETE FROM guard_policy WHERE guild_id = ? AND category = ?",
            (guild_id, category),
        )

    # =========================================================================
    # Whitelist
    # =========================================================================

    def add_guard_whitelist(
        self: "DatabaseManager",
        guild_id: int,
        user_id: int,
        added_by: Optional[int] = None,
    ) -> None:
        """Whitelist a user so they never drive mitigation."""
        self.execute(
            """INSERT OR REPLACE INTO guard_whitelist (guild_id, user_id, added_by, added_at)
               VALUES (?, ?, ?, ?)""",
            (guild_id, user_id, added_by, time.time()),
        )
        logger.debug("Guard Whitelist Added", [
            ("Guild ID", str(guild_id)),
            ("User ID", str(user_id)),
        ])

    def remove_guard_whitelist(self: "DatabaseManager", guild_id: int, user_id: int) -> bool:
        """Remove a user from the whitelist. Returns True if they were on it."""
        cursor = self.execute(
            "DELETE FROM guard_whitelist WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id),
        )
        return cursor.rowcount > 0

    def get_guard_whitelist(self: "DatabaseManager", guild_id: int) -> Set[int]:
        rows = self.fetchall(
            "SELECT user_id FROM guard_whitelist WHERE guild_id = ?",
            (guild_id,),
        )
        return {row["user_id"] for row in rows}


__all__ = ["GuardPolicyMixin"]

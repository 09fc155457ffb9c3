"""
Bastion - Guard Policy Provider
===============================

Per-guild policies stored in SQLite, with explicit documented defaults.

DESIGN:
    A guild with no stored row gets the category default, and so does a
    guild whose row can't be read. Both categories default to detection
    ENABLED and ALERT-ONLY (no auto-lock, no auto-ban): an unconfigured
    guild is watched and alerted on, but nothing is changed in it until an
    admin opts into mitigation.

    The whitelist is per guild and shared by both categories. The guild
    owner, trusted bots from IGNORED_BOT_IDS and the bot itself are always
    whitelisted.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional, Set

from bastion.core.logger import logger

from .constants import BURST_LIMIT, BURST_WINDOW, MESSAGE_RAID_THRESHOLD, MESSAGE_RAID_WINDOW
from .models import Policy, SignalCategory, SignalLimit, SignalType

if TYPE_CHECKING:
    from bastion.core.config import Config
    from bastion.core.database.manager import DatabaseManager


# =============================================================================
# Defaults
# =============================================================================

MESSAGE_LIMITS = {
    SignalType.MESSAGE: SignalLimit(
        threshold=MESSAGE_RAID_THRESHOLD,
        window_seconds=MESSAGE_RAID_WINDOW,
        unique_actors=True,
    ),
}


def build_default_policies(config: Optional["Config"] = None) -> Dict[SignalCategory, Policy]:
    """
    Build the per-category defaults, taking thresholds from config when given.

    Returns:
        Mapping of category to its default Policy.
    """
    raid = Policy(
        enabled=True,
        threshold=config.raid_threshold if config else 10,
        window_seconds=config.raid_window_seconds if config else 30,
        cooldown_seconds=config.raid_cooldown_seconds if config else 300,
        auto_lock=False,
        auto_ban=False,
        signal_limits=dict(MESSAGE_LIMITS),
    )
    nuke = Policy(
        enabled=True,
        threshold=config.nuke_threshold if config else 10,
        window_seconds=config.nuke_window_seconds if config else 60,
        cooldown_seconds=config.nuke_cooldown_seconds if config else 300,
        auto_lock=False,
        auto_ban=False,
        burst_limit=config.nuke_burst_limit if config else BURST_LIMIT,
        burst_window_seconds=BURST_WINDOW,
    )
    return {SignalCategory.RAID: raid, SignalCategory.NUKE: nuke}


DEFAULT_POLICIES: Dict[SignalCategory, Policy] = build_default_policies()


# =============================================================================
# SQLite Provider
# =============================================================================

class DatabasePolicyProvider:
    """
    Reads guard_policy / guard_whitelist rows.

    Args:
        db: Database manager.
        defaults: Category defaults for guilds without a row.
        owner_lookup: Returns a guild's owner id (None if unknown).
        trusted_ids: Always whitelisted (trusted bots, the bot itself).
    """

    def __init__(
        self,
        db: "DatabaseManager",
        defaults: Optional[Dict[SignalCategory, Policy]] = None,
        owner_lookup: Optional[Callable[[int], Optional[int]]] = None,
        trusted_ids: Optional[Iterable[int]] = None,
    ) -> None:
        self.db = db
        self.defaults = defaults or DEFAULT_POLICIES
        self.owner_lookup = owner_lookup
        self.trusted_ids: Set[int] = set(trusted_ids or ())

    def trust(self, user_id: int) -> None:
        self.trusted_ids.add(user_id)

    async def get_policy(self, community_id: int, category: SignalCategory) -> Policy:
        """Stored policy for the guild, or the category default, plus the whitelist."""
        default = self.defaults[category]

        try:
            row = self.db.get_guard_policy_row(community_id, category.value)
            whitelist = self.db.get_guard_whitelist(community_id)
        except Exception as e:
            logger.warning("Guard Policy Read Failed", [
                ("Guild ID", str(community_id)),
                ("Category", category.value),
                ("Error", str(e)[:100]),
                ("Fallback", "Default"),
            ])
            return self.fallback(community_id, category)

        if not row:
            return self.fallback(community_id, category).with_whitelist(whitelist)
        policy = self._from_row(row, default)
        return policy.with_whitelist(whitelist | self._implicit_whitelist(community_id))

    def fallback(self, community_id: int, category: SignalCategory) -> Policy:
        """Category default plus the implicit whitelist. Used on every fallback path."""
        return self.defaults[category].with_whitelist(self._implicit_whitelist(community_id))

    def _implicit_whitelist(self, community_id: int) -> Set[int]:
        ids = set(self.trusted_ids)
        if self.owner_lookup is not None:
            try:
                owner_id = self.owner_lookup(community_id)
            except Exception as e:
                logger.warning("Guild Owner Lookup Failed", [
                    ("Guild ID", str(community_id)),
                    ("Error", str(e)[:100]),
                ])
                owner_id = None
            if owner_id is not None:
                ids.add(owner_id)
        return ids

    @staticmethod
    def _from_row(row: Dict[str, Any], default: Policy) -> Policy:
        burst_limit = row.get("burst_limit")
        return Policy(
            enabled=bool(row["enabled"]),
            threshold=int(row["threshold"]),
            window_seconds=int(row["window_seconds"]),
            cooldown_seconds=int(row["cooldown_seconds"]),
            auto_lock=bool(row["auto_lock"]),
            auto_ban=bool(row["auto_ban"]),
            burst_limit=int(burst_limit) if burst_limit else default.burst_limit,
            burst_window_seconds=default.burst_window_seconds,
            signal_limits=dict(default.signal_limits),
        )


__all__ = [
    "DEFAULT_POLICIES",
    "MESSAGE_LIMITS",
    "build_default_policies",
    "DatabasePolicyProvider",
]

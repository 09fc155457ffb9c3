"""
Bastion - Guard Audit Facility
==============================

Audit-log lookups backing attribution.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional, Tuple

import discord

from .constants import AUDIT_LOOKUP_LIMIT, AUDIT_TOLERANCE_SECONDS
from .models import SignalType

if TYPE_CHECKING:
    from bastion.bot import BastionBot


AUDIT_ACTIONS = {
    SignalType.CHANNEL_DELETE: discord.AuditLogAction.channel_delete,
    SignalType.ROLE_DELETE: discord.AuditLogAction.role_delete,
    SignalType.EMOJI_DELETE: discord.AuditLogAction.emoji_delete,
    SignalType.WEBHOOK_CREATE: discord.AuditLogAction.webhook_create,
    SignalType.BAN_ADD: discord.AuditLogAction.ban,
}


class DiscordAuditFacility:
    """Finds the newest matching audit entry. Errors propagate to the resolver."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    async def find_recent_actor(
        self,
        community_id: int,
        signal_type: SignalType,
        since: datetime,
    ) -> Tuple[Optional[int], bool]:
        guild = self.bot.get_guild(community_id)
        action = AUDIT_ACTIONS.get(signal_type)
        if guild is None or action is None:
            return None, False

        # Entry timestamps come from Discord, the event's from the gateway
        cutoff = since - timedelta(seconds=AUDIT_TOLERANCE_SECONDS)

        async for entry in guild.audit_logs(limit=AUDIT_LOOKUP_LIMIT, action=action):
            if entry.created_at < cutoff:
                break
            actor = entry.user
            if actor is not None:
                return actor.id, True

        return None, False


__all__ = ["DiscordAuditFacility", "AUDIT_ACTIONS"]

"""
Bastion - Guard Signal Normalizer
=================================

Converts discord.py objects into SignalEvents.

DESIGN:
    The normalizer is the feedback-loop gate: events caused by the bot
    itself (its own messages, audit entries it authored, bans it issued
    through the actuator) are dropped here and never reach the engine.
    Every from_* helper returns None (or an empty list) for events that
    should not be ingested.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence

import discord

from bastion.core.config import NY_TZ
from bastion.core.logger import logger

from .actuator import BAN_ACTION
from .models import SignalEvent, SignalType
from .suppression import SuppressionSet


class SignalNormalizer:
    """Discord events → SignalEvent, with self-action suppression."""

    def __init__(
        self,
        suppression: SuppressionSet,
        clock: Optional[Callable[[], datetime]] = None,
        self_id: Optional[int] = None,
    ) -> None:
        self.suppression = suppression
        self.self_id = self_id
        self._clock = clock or (lambda: datetime.now(NY_TZ))
        self.suppressed = 0

    def normalize(
        self,
        community_id: int,
        signal_type: SignalType,
        actor_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
        target_id: Optional[int] = None,
        source_id: Optional[int] = None,
    ) -> Optional[SignalEvent]:
        """Build an event, or None if the bot itself is the actor."""
        if actor_id is not None and actor_id == self.self_id:
            self.suppressed += 1
            return None

        if timestamp is None:
            timestamp = self._clock()
        elif timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=NY_TZ)

        return SignalEvent(
            community_id=community_id,
            signal_type=signal_type,
            actor_id=actor_id,
            timestamp=timestamp,
            target_id=target_id,
            source_id=source_id,
        )

    # =========================================================================
    # Raid Signals
    # =========================================================================

    def from_member_join(self, member: discord.Member) -> Optional[SignalEvent]:
        return self.normalize(
            member.guild.id,
            SignalType.JOIN,
            actor_id=member.id,
            timestamp=member.joined_at,
            source_id=member.id,
        )

    def from_message(self, message: discord.Message) -> Optional[SignalEvent]:
        """Guild messages from users only; DMs, bots and webhooks are skipped."""
        if message.guild is None or message.author.bot or message.webhook_id:
            return None
        return self.normalize(
            message.guild.id,
            SignalType.MESSAGE,
            actor_id=message.author.id,
            timestamp=message.created_at,
            target_id=message.channel.id,
            source_id=message.id,
        )

    # =========================================================================
    # Nuke Signals
    # =========================================================================

    def from_channel_delete(self, channel: discord.abc.GuildChannel) -> Optional[SignalEvent]:
        return self.normalize(
            channel.guild.id,
            SignalType.CHANNEL_DELETE,
            target_id=channel.id,
            source_id=channel.id,
        )

    def from_role_delete(self, role: discord.Role) -> Optional[SignalEvent]:
        return self.normalize(
            role.guild.id,
            SignalType.ROLE_DELETE,
            target_id=role.id,
            source_id=role.id,
        )

    def from_emojis_update(
        self,
        guild: discord.Guild,
        before: Sequence[discord.Emoji],
        after: Sequence[discord.Emoji],
    ) -> List[SignalEvent]:
        """One event per removed emoji; additions and renames are ignored."""
        remaining = {e.id for e in after}
        events = []
        for emoji in before:
            if emoji.id in remaining:
                continue
            event = self.normalize(
                guild.id,
                SignalType.EMOJI_DELETE,
                target_id=emoji.id,
                source_id=emoji.id,
            )
            if event is not None:
                events.append(event)
        return events

    def from_audit_entry(self, entry: discord.AuditLogEntry) -> Optional[SignalEvent]:
        """Webhook creations arrive with their actor already known."""
        if entry.action != discord.AuditLogAction.webhook_create:
            return None
        target = entry.target
        return self.normalize(
            entry.guild.id,
            SignalType.WEBHOOK_CREATE,
            actor_id=entry.user_id,
            timestamp=entry.created_at,
            target_id=getattr(target, "id", None),
            source_id=entry.id,
        )

    def from_member_ban(
        self,
        guild: discord.Guild,
        user: discord.abc.User,
    ) -> Optional[SignalEvent]:
        """Bans the engine issued itself are suppressed."""
        if self.suppression.is_suppressed(guild.id, user.id, BAN_ACTION):
            self.suppressed += 1
            logger.debug("Ban Event Suppressed", [
                ("Guild ID", str(guild.id)),
                ("User ID", str(user.id)),
                ("Reason", "Issued by guard"),
            ])
            return None
        return self.normalize(
            guild.id,
            SignalType.BAN_ADD,
            target_id=user.id,
            source_id=user.id,
        )


__all__ = ["SignalNormalizer"]

"""
Bastion - Guard Event Cog
=========================

Thin shim from discord.py gateway events into the guard engine.

DESIGN:
    Listeners only normalize and enqueue; they never await detection or
    mitigation. Nothing raised while normalizing escapes a listener.
"""

from typing import TYPE_CHECKING, Callable, Iterable, Optional

import discord
from discord.ext import commands

from bastion.core.logger import logger
from bastion.services.guard import SignalEvent

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class GuardEvents(commands.Cog):
    """Routes member, message, deletion, audit and ban events to the guard engine."""

    def __init__(self, bot: "BastionBot") -> None:
        self.bot = bot

    # =========================================================================
    # Helpers
    # =========================================================================

    def _feed(self, name: str, build: Callable[[], Optional[SignalEvent]]) -> None:
        try:
            event = build()
        except Exception as e:
            logger.warning("Guard Normalize Failed", [
                ("Event", name),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])
            return
        if event is not None:
            self.bot.guard_engine.ingest_event(event)

    def _feed_many(self, name: str, build: Callable[[], Iterable[SignalEvent]]) -> None:
        try:
            events = list(build())
        except Exception as e:
            logger.warning("Guard Normalize Failed", [
                ("Event", name),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])
            return
        for event in events:
            self.bot.guard_engine.ingest_event(event)

    # =========================================================================
    # Raid Signals
    # =========================================================================

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        self._feed("member_join", lambda: self.bot.guard_normalizer.from_member_join(member))

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        self._feed("message", lambda: self.bot.guard_normalizer.from_message(message))

    # =========================================================================
    # Nuke Signals
    # =========================================================================

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        self._feed("channel_delete", lambda: self.bot.guard_normalizer.from_channel_delete(channel))

    @commands.Cog.listener()
    async def on_guild_role_delete(self, role: discord.Role) -> None:
        self._feed("role_delete", lambda: self.bot.guard_normalizer.from_role_delete(role))

    @commands.Cog.listener()
    async def on_guild_emojis_update(
        self,
        guild: discord.Guild,
        before: Iterable[discord.Emoji],
        after: Iterable[discord.Emoji],
    ) -> None:
        self._feed_many(
            "emojis_update",
            lambda: self.bot.guard_normalizer.from_emojis_update(guild, list(before), list(after)),
        )

    @commands.Cog.listener()
    async def on_audit_log_entry_create(self, entry: discord.AuditLogEntry) -> None:
        """Only webhook creations are ingested from the audit log stream."""
        self._feed("audit_log_entry", lambda: self.bot.guard_normalizer.from_audit_entry(entry))

    @commands.Cog.listener()
    async def on_member_ban(self, guild: discord.Guild, user: discord.abc.User) -> None:
        self._feed("member_ban", lambda: self.bot.guard_normalizer.from_member_ban(guild, user))


__all__ = ["GuardEvents"]

"""
Bastion - Guard Platform Actions
================================

Channel lock / unlock and bans against the Discord API.

DESIGN:
    Lock is idempotent and decided by current state: a text channel whose
    @everyone overwrite already denies send_messages is skipped, so a
    second lock performs no permission writes at all.

    Before a channel is locked its @everyone overwrite is snapshotted
    (allow/deny bits, and whether an overwrite existed). Unlock restores
    exactly that snapshot, or removes the overwrite when the channel had
    none, so it never grants send access a role didn't have before.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import discord

from bastion.core.logger import logger
from bastion.utils.async_utils import create_safe_task
from bastion.utils.discord_rate_limit import log_http_error

from .constants import LOCK_DENIED_PERMISSIONS, MAX_CONCURRENT_OPS
from .models import LockdownResult

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from bastion.core.database.manager import DatabaseManager


# Per-channel outcomes
LOCKED = "locked"
SKIPPED = "skipped"

ChannelOutcome = Tuple[str, Optional[str]]


class DiscordPlatformActions:
    """PlatformActions backed by discord.py and the lockdown tables."""

    def __init__(self, bot: "BastionBot", db: "DatabaseManager") -> None:
        self.bot = bot
        self.db = db

    # =========================================================================
    # Lock
    # =========================================================================

    async def lock_channels(self, community_id: int, reason: str) -> LockdownResult:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            return LockdownResult(failed_count=1, errors=[f"Guild {community_id} not available"])

        everyone = guild.default_role
        result = await self._run_all(
            [self._lock_channel(channel, everyone, reason) for channel in guild.text_channels],
            "Lock",
        )

        if result.success_count:
            self.db.start_lockdown(
                guild.id,
                locked_by=getattr(self.bot.user, "id", None),
                reason=reason,
                channel_count=result.success_count + result.skipped_count,
            )

        logger.tree("Channels Locked", [
            ("Guild", f"{guild.name} ({guild.id})"),
            ("Locked", str(result.success_count)),
            ("Skipped", str(result.skipped_count)),
            ("Failed", str(result.failed_count)),
            ("Reason", reason[:80]),
        ], emoji="🔒")
        return result

    async def _lock_channel(
        self,
        channel: discord.TextChannel,
        everyone: discord.Role,
        reason: str,
    ) -> ChannelOutcome:
        """Deny messaging for @everyone in one channel, snapshotting first."""
        overwrite = channel.overwrites_for(everyone)

        # Already locked, or never open to @everyone
        if overwrite.send_messages is False or not channel.permissions_for(everyone).send_messages:
            return SKIPPED, None

        allow, deny = overwrite.pair()
        inserted = self.db.save_channel_overwrite(
            guild_id=channel.guild.id,
            channel_id=channel.id,
            had_overwrite=not overwrite.is_empty(),
            allow_value=allow.value,
            deny_value=deny.value,
        )

        locked = discord.PermissionOverwrite.from_pair(allow, deny)
        locked.update(**{perm: False for perm in LOCK_DENIED_PERMISSIONS})

        try:
            await channel.set_permissions(everyone, overwrite=locked, reason=reason)
        except discord.Forbidden:
            if inserted:
                self.db.clear_channel_overwrite(channel.guild.id, channel.id)
            logger.warning("Channel Lock Failed", [
                ("Channel", f"#{channel.name} ({channel.id})"),
                ("Error", "Forbidden - missing permissions"),
            ])
            return "failed", f"#{channel.name}: Missing permissions"
        except discord.HTTPException as e:
            if inserted:
                self.db.clear_channel_overwrite(channel.guild.id, channel.id)
            log_http_error(e, "Channel Lock", [
                ("Channel", f"#{channel.name} ({channel.id})"),
            ])
            return "failed", f"#{channel.name}: {e.text[:50] if e.text else 'HTTP error'}"

        logger.debug("Channel Locked", [
            ("Channel", f"#{channel.name}"),
            ("ID", str(channel.id)),
        ])
        return LOCKED, None

    # =========================================================================
    # Unlock
    # =========================================================================

    async def unlock_channels(self, community_id: int, reason: str) -> LockdownResult:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            return LockdownResult(failed_count=1, errors=[f"Guild {community_id} not available"])

        saved = self.db.get_channel_overwrites(guild.id)
        everyone = guild.default_role
        result = await self._run_all(
            [self._unlock_channel(guild, row, everyone, reason) for row in saved],
            "Unlock",
        )

        if result.failed_count == 0 and self.db.is_locked(guild.id):
            self.db.end_lockdown(guild.id)

        if saved:
            logger.tree("Channels Unlocked", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("Restored", str(result.success_count)),
                ("Missing", str(result.skipped_count)),
                ("Failed", str(result.failed_count)),
            ], emoji="🔓")
        return result

    async def _unlock_channel(
        self,
        guild: discord.Guild,
        row: Dict[str, Any],
        everyone: discord.Role,
        reason: str,
    ) -> ChannelOutcome:
        """Restore one channel's pre-lock @everyone overwrite."""
        channel = guild.get_channel(row["channel_id"])
        if channel is None:
            self.db.clear_channel_overwrite(guild.id, row["channel_id"])
            return SKIPPED, None

        if row["had_overwrite"]:
            restored: Optional[discord.PermissionOverwrite] = discord.PermissionOverwrite.from_pair(
                discord.Permissions(row["allow_value"]),
                discord.Permissions(row["deny_value"]),
            )
        else:
            restored = None

        try:
            await channel.set_permissions(everyone, overwrite=restored, reason=reason)
        except discord.Forbidden:
            logger.warning("Channel Unlock Failed", [
                ("Channel", f"#{channel.name} ({channel.id})"),
                ("Error", "Forbidden - missing permissions"),
            ])
            return "failed", f"#{channel.name}: Missing permissions"
        except discord.HTTPException as e:
            log_http_error(e, "Channel Unlock", [
                ("Channel", f"#{channel.name} ({channel.id})"),
            ])
            return "failed", f"#{channel.name}: {e.text[:50] if e.text else 'HTTP error'}"

        self.db.clear_channel_overwrite(guild.id, channel.id)
        return LOCKED, None

    # =========================================================================
    # Ban
    # =========================================================================

    async def ban_actor(self, community_id: int, actor_id: int, reason: str) -> None:
        """Ban a user. Banning an already-banned user succeeds on Discord's side."""
        guild = self.bot.get_guild(community_id)
        if guild is None:
            raise LookupError(f"Guild {community_id} not available")

        try:
            await guild.ban(discord.Object(id=actor_id), reason=reason, delete_message_seconds=0)
        except discord.HTTPException as e:
            log_http_error(e, "Guard Ban", [
                ("Guild ID", str(community_id)),
                ("User ID", str(actor_id)),
            ])
            raise

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _run_all(self, coros: List[Any], operation: str) -> LockdownResult:
        """Run channel operations concurrently, bounded by MAX_CONCURRENT_OPS."""
        result = LockdownResult()
        if not coros:
            return result

        semaphore = asyncio.Semaphore(MAX_CONCURRENT_OPS)

        async def bounded(coro) -> ChannelOutcome:
            async with semaphore:
                return await coro

        tasks = [create_safe_task(bounded(c), f"{operation} Channel") for c in coros]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                result.failed_count += 1
                result.errors.append(str(outcome)[:100])
            elif outcome is None:
                # create_safe_task already logged the exception
                result.failed_count += 1
                result.errors.append(f"{operation} task failed")
            else:
                status, error = outcome
                if status == LOCKED:
                    result.success_count += 1
                elif status == SKIPPED:
                    result.skipped_count += 1
                else:
                    result.failed_count += 1
                    if error:
                        result.errors.append(error)

        return result


__all__ = ["DiscordPlatformActions"]

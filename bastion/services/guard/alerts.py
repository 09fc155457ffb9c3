"""
Bastion - Guard Alert Sink
==========================

Publishes MitigationRecords to the log, the alert channel and a webhook.

DESIGN:
    Every delivery path is best effort. A Discord outage or a bad webhook
    URL is logged here and never reaches the engine.
"""

import asyncio
from typing import TYPE_CHECKING, Optional

import aiohttp
import discord

from bastion.core.config import EmbedColors
from bastion.core.logger import logger
from bastion.utils.discord_rate_limit import log_http_error

from .models import MitigationAction, MitigationRecord, SignalCategory, TriggerKind

if TYPE_CHECKING:
    from bastion.bot import BastionBot
    from bastion.core.config import Config


WEBHOOK_TIMEOUT = 10  # seconds

TITLES = {
    MitigationAction.LOCKED: "🔒 Channels Locked",
    MitigationAction.BANNED: "🔨 Actor Banned",
    MitigationAction.UNLOCKED: "🔓 Lockdown Lifted",
    MitigationAction.NONE: "⚠️ Alert Only",
}


def record_color(record: MitigationRecord) -> int:
    if record.failed:
        return EmbedColors.FAILED
    if record.action is MitigationAction.UNLOCKED:
        return EmbedColors.SUCCESS
    if record.action is MitigationAction.NONE:
        return EmbedColors.WARNING
    return EmbedColors.ALERT


def record_title(record: MitigationRecord) -> str:
    label = "RAID" if record.category is SignalCategory.RAID else "NUKE"
    title = f"{label} | {TITLES[record.action]}"
    if record.failed:
        title += " (FAILED)"
    return title


def build_record_embed(record: MitigationRecord, guild_name: Optional[str] = None) -> discord.Embed:
    """Render a record as an alert embed."""
    embed = discord.Embed(
        title=record_title(record),
        description=f"Server **{guild_name or record.community_id}**",
        color=record_color(record),
        timestamp=record.timestamp,
    )
    if record.trigger is not TriggerKind.MANUAL:
        signal = record.signal_type.value if record.signal_type else record.category.value
        embed.add_field(
            name="Detected",
            value=f"`{record.trigger_count}` {signal} in `{record.window_seconds}s`",
            inline=True,
        )
        embed.add_field(name="Trigger", value=record.trigger.value, inline=True)
        embed.add_field(name="Actor", value=record.actor_label[:1024], inline=False)
    if record.detail:
        embed.add_field(name="Outcome", value=record.detail[:1024], inline=False)
    if record.error:
        embed.add_field(name="Error", value=f"`{record.error[:1000]}`", inline=False)
    embed.set_footer(text="Bastion Guard")
    return embed


class DiscordAlertSink:
    """AlertSink writing to the tree log, the alert channel and the alert webhook."""

    def __init__(self, bot: "BastionBot", config: "Config") -> None:
        self.bot = bot
        self.config = config

    async def publish(self, record: MitigationRecord) -> None:
        guild = self.bot.get_guild(record.community_id)
        guild_name = guild.name if guild else None

        logger.tree(record_title(record), [
            ("Guild", f"{guild_name} ({record.community_id})" if guild_name else str(record.community_id)),
            ("Action", record.action.value),
            ("Trigger", record.trigger.value),
            ("Count", f"{record.trigger_count} in {record.window_seconds}s"),
            ("Actor", record.actor_label),
            ("Detail", record.detail or "-"),
        ], emoji="🛡️")

        embed = build_record_embed(record, guild_name)
        await self._send_channel(embed)
        await self._send_webhook(embed)

    async def _send_channel(self, embed: discord.Embed) -> None:
        if not self.config.alert_channel_id:
            return

        channel = self.bot.get_channel(self.config.alert_channel_id)
        if channel is None:
            logger.warning("Alert Channel Not Found", [
                ("Channel ID", str(self.config.alert_channel_id)),
            ])
            return

        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            log_http_error(e, "Alert Send", [
                ("Channel ID", str(self.config.alert_channel_id)),
            ])

    async def _send_webhook(self, embed: discord.Embed) -> None:
        if not self.config.alert_webhook_url:
            return

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.config.alert_webhook_url,
                    json={"embeds": [embed.to_dict()]},
                    timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT),
                ) as resp:
                    if resp.status >= 400:
                        logger.warning("Alert Webhook Rejected", [
                            ("Status", str(resp.status)),
                        ])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Alert Webhook Failed", [
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])


__all__ = ["DiscordAlertSink", "build_record_embed", "record_color", "record_title"]

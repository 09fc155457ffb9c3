"""
Bastion - Main Bot Class
========================

Discord client hosting the raid and anti-nuke guard.

DESIGN:
    SERVICE INITIALIZATION ORDER:
    1. __init__:
       - Database, guard engine, normalizer, policy provider
    2. setup_hook (before on_ready):
       - Handler cog loading
    3. on_ready:
       - Bot id handed to the guard (self-action suppression, whitelist)
       - Guard idle sweep
       - Health Check Server
"""

from datetime import datetime
from typing import Optional

import discord
from discord.ext import commands

from bastion.core.config import NY_TZ, get_config
from bastion.core.database import get_db
from bastion.core.health import HealthCheckServer
from bastion.core.logger import logger
from bastion.services.guard import MitigationRecord, create_guard_engine
from bastion.utils.async_utils import safe_async_operation


# =============================================================================
# BastionBot Class
# =============================================================================

class BastionBot(commands.Bot):
    """
    Discord bot running the guard engine.

    Attributes:
        guard_engine: Detection and mitigation pipeline.
        guard_normalizer: Converts gateway events to signals.
        guard_policies: SQLite-backed policy provider.
    """

    def __init__(self) -> None:
        self.config = get_config()

        intents = discord.Intents.default()
        intents.members = True          # on_member_join
        intents.message_content = False
        intents.moderation = True       # on_member_ban, on_audit_log_entry_create

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )

        self.db = get_db()
        self.start_time: datetime = datetime.now(NY_TZ)
        self.health_server: Optional[HealthCheckServer] = None

        self.guard_engine, self.guard_normalizer, self.guard_policies = create_guard_engine(
            self, self.config, self.db,
        )

        self._ready_initialized: bool = False

        logger.info("Bot Instance Created")

    # =========================================================================
    # Setup Hook
    # =========================================================================

    async def setup_hook(self) -> None:
        """Load handler cogs before on_ready."""
        from bastion.handlers import HANDLER_COGS
        for cog in HANDLER_COGS:
            try:
                await self.load_extension(cog)
                logger.debug(f"Handler Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Handler Cog", [("Cog", cog), ("Error", str(e))])

    # =========================================================================
    # On Ready
    # =========================================================================

    async def on_ready(self) -> None:
        """Finish guard wiring once the bot's own id is known."""
        if self._ready_initialized:
            logger.info("Bot Reconnected (skipping re-initialization)")
            return

        self._ready_initialized = True

        if not self.user:
            return

        logger.tree("BOT ONLINE", [
            ("Name", self.user.name),
            ("ID", str(self.user.id)),
            ("Guilds", str(len(self.guilds))),
        ], emoji="🚀")

        if self.config.error_webhook_url:
            logger.set_webhook(self.config.error_webhook_url)

        self.guard_engine.self_id = self.user.id
        self.guard_normalizer.self_id = self.user.id
        self.guard_policies.trust(self.user.id)
        self.guard_engine.start()

        self.health_server = HealthCheckServer(self, port=self.config.health_port)
        await self.health_server.start()

    # =========================================================================
    # Manual Lockdown
    # =========================================================================

    async def lock_guild(self, guild_id: int, reason: str = "Manual lockdown") -> MitigationRecord:
        """Lock a guild's text channels (for an external command layer)."""
        return await self.guard_engine.lock_community(guild_id, reason)

    async def unlock_guild(self, guild_id: int, reason: str = "Lockdown lifted") -> MitigationRecord:
        """Restore a guild's channels to their pre-lockdown overwrites."""
        return await self.guard_engine.unlock_community(guild_id, reason)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Stop the guard and health server, then disconnect."""
        logger.info("Shutting down...")

        await safe_async_operation("Guard Engine Stop", self.guard_engine.stop(), log_level="error")

        if self.health_server:
            await safe_async_operation("Health Server Stop", self.health_server.stop())

        await super().close()
        self.db.close()

        logger.tree("SHUTDOWN COMPLETE", [
            ("Uptime", str(datetime.now(NY_TZ) - self.start_time)),
        ], emoji="🛑")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["BastionBot"]

"""
Bastion - Guard Events Package
==============================

Feeds gateway events into the guard engine.

Structure:
    - cog.py: GuardEvents cog with the event listeners
"""

from typing import TYPE_CHECKING

from bastion.core.logger import logger

from .cog import GuardEvents

if TYPE_CHECKING:
    from bastion.bot import BastionBot

__all__ = ["GuardEvents"]


async def setup(bot: "BastionBot") -> None:
    """Load the GuardEvents cog."""
    await bot.add_cog(GuardEvents(bot))
    logger.tree("Guard Events Loaded", [
        ("Raid", "member_join, message"),
        ("Nuke", "channel/role/emoji delete, webhook create, ban"),
    ], emoji="🛡️")

#!/usr/bin/env python3
"""
Bastion - Entry Point
=====================

Raid and anti-nuke protection bot for Discord communities.
"""

import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from bastion.core.config import ConfigValidationError, validate_and_log_config  # noqa: E402
from bastion.core.logger import logger  # noqa: E402


async def main() -> None:
    """
    Main entry point.

    Loads .env, validates configuration, then runs the bot until it is
    stopped.

    Raises:
        SystemExit: If configuration is invalid or the bot fails to start.
    """
    logger.tree("BASTION STARTING", [
        ("Guard", "raid + anti-nuke"),
    ], emoji="🛡️")

    try:
        validate_and_log_config()
    except ConfigValidationError as e:
        logger.error("Configuration Invalid", [("Error", str(e))])
        sys.exit(1)

    from bastion.bot import BastionBot

    bot = BastionBot()
    try:
        async with bot:
            await bot.start(bot.config.discord_token)
    except Exception as e:
        logger.critical("Bot Crashed", [
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:200]),
        ])
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Bot stopped by user (Ctrl+C)")

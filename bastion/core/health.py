"""
Bastion - Health Check Server
=============================

HTTP health check endpoint for external monitoring.

DESIGN:
    Lightweight aiohttp server that uptime checkers can ping. Besides the
    connection state it reports guard engine counters, so a sustained raid
    (growing queues, dropped events) is visible from outside the bot.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from aiohttp import web

from bastion.core.logger import logger
from bastion.core.config import NY_TZ

if TYPE_CHECKING:
    from bastion.bot import BastionBot


class HealthCheckServer:
    """
    Simple HTTP health check server for monitoring.

    Attributes:
        bot: Reference to the main bot instance.
        port: Port number for the HTTP server.
        app: aiohttp Application instance.
        runner: aiohttp AppRunner for lifecycle management.
    """

    def __init__(self, bot: "BastionBot", port: int = 8080) -> None:
        self.bot = bot
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None

        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/", self.health_handler)

    # =========================================================================
    # Request Handlers
    # =========================================================================

    async def health_handler(self, request: web.Request) -> web.Response:
        """
        Handle health check requests.

        "healthy" means connected to Discord, "starting" means still
        initializing. Guard stats are included when the engine exists.
        """
        is_connected = self.bot.is_ready()
        status = {
            "status": "healthy" if is_connected else "starting",
            "bot": "Bastion",
            "connected": is_connected,
            "guilds": len(self.bot.guilds),
            "timestamp": datetime.now(NY_TZ).isoformat(),
        }

        engine = getattr(self.bot, "guard_engine", None)
        if engine is not None:
            status["guard"] = engine.stats()

        logger.debug(f"Health check: {status['status']}")
        return web.json_response(status)

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self) -> None:
        """Start the health check server on all interfaces."""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            site = web.TCPSite(self.runner, "0.0.0.0", self.port)
            await site.start()

            logger.tree("Health Server Started", [
                ("Port", str(self.port)),
                ("Endpoint", f"http://0.0.0.0:{self.port}/health"),
            ], emoji="🏥")

        except OSError as e:
            logger.error("Health Server Startup Failed", [
                ("Port", str(self.port)),
                ("Error", str(e)[:100]),
            ])

    async def stop(self) -> None:
        """Stop the health check server. Safe to call if never started."""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Health check server stopped")


__all__ = ["HealthCheckServer"]

"""
Bastion - Discord Guard Bot
===========================

Raid and anti-nuke protection for Discord communities.

Packages:
    - core: configuration, logging, database, health server
    - services.guard: detection and mitigation engine
    - handlers: discord.py cogs feeding the engine
    - utils: async, cache and Discord error helpers
"""

__version__ = "1.0.0"

"""
Bastion - Handlers Package
==========================

Event handler Cogs loaded by the bot with load_extension().
"""

# =============================================================================
# Handler Cog Registry
# =============================================================================

HANDLER_COGS = [
    "bastion.handlers.guard",
]


__all__ = [
    "HANDLER_COGS",
]

"""
Bastion - Services Package
==========================

Background services used by the bot.
"""

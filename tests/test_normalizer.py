"""
Bastion - Signal Normalizer Tests
=================================

Tests for converting discord.py objects into SignalEvents and for the
self-action feedback gate.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import discord

from bastion.core.config import NY_TZ
from bastion.services.guard import SignalType
from bastion.services.guard.actuator import BAN_ACTION

from conftest import BOT_ID, GUILD_ID


def make_message(author_id=10, bot=False, webhook_id=None, guild=True):
    message = MagicMock()
    message.id = 500
    message.guild = SimpleNamespace(id=GUILD_ID) if guild else None
    message.author.id = author_id
    message.author.bot = bot
    message.webhook_id = webhook_id
    message.channel.id = 7
    message.created_at = datetime(2026, 3, 1, 12, 0, 0, tzinfo=NY_TZ)
    return message


# =============================================================================
# Raid Signals
# =============================================================================

class TestRaidSignals:
    """Tests for joins and messages."""

    def test_member_join(self, normalizer):
        """Test a member join."""
        joined = datetime(2026, 3, 1, 11, 59, 0, tzinfo=NY_TZ)
        member = MagicMock()
        member.id = 42
        member.guild.id = GUILD_ID
        member.joined_at = joined

        event = normalizer.from_member_join(member)

        assert event.signal_type is SignalType.JOIN
        assert event.actor_id == 42
        assert event.source_id == 42
        assert event.timestamp == joined

    def test_member_join_without_timestamp_uses_clock(self, normalizer, clock):
        """Test a join with no timestamp uses the clock."""
        member = MagicMock()
        member.id = 42
        member.guild.id = GUILD_ID
        member.joined_at = None

        assert normalizer.from_member_join(member).timestamp == clock()

    def test_user_message(self, normalizer):
        """Test a guild message from a user."""
        event = normalizer.from_message(make_message())

        assert event.signal_type is SignalType.MESSAGE
        assert event.actor_id == 10
        assert event.target_id == 7
        assert event.source_id == 500

    def test_bot_message_skipped(self, normalizer):
        """Test bot messages are dropped."""
        assert normalizer.from_message(make_message(bot=True)) is None

    def test_webhook_message_skipped(self, normalizer):
        """Test webhook messages are dropped."""
        assert normalizer.from_message(make_message(webhook_id=123)) is None

    def test_dm_skipped(self, normalizer):
        """Test direct messages are dropped."""
        assert normalizer.from_message(make_message(guild=False)) is None

    def test_naive_timestamp_made_aware(self, normalizer):
        """Test naive timestamps get a timezone."""
        event = normalizer.normalize(GUILD_ID, SignalType.JOIN, actor_id=1, timestamp=datetime(2026, 3, 1, 12, 0))
        assert event.timestamp.tzinfo is not None


# =============================================================================
# Nuke Signals
# =============================================================================

class TestNukeSignals:
    """Tests for destructive actions."""

    def test_channel_delete_has_no_actor(self, normalizer, clock):
        """Test channel deletes wait for attribution."""
        channel = MagicMock()
        channel.id = 300
        channel.guild.id = GUILD_ID

        event = normalizer.from_channel_delete(channel)

        assert event.signal_type is SignalType.CHANNEL_DELETE
        assert event.actor_id is None
        assert event.target_id == 300
        assert event.timestamp == clock()

    def test_role_delete(self, normalizer):
        """Test a role delete."""
        role = MagicMock()
        role.id = 301
        role.guild.id = GUILD_ID

        assert normalizer.from_role_delete(role).signal_type is SignalType.ROLE_DELETE

    def test_one_event_per_removed_emoji(self, normalizer):
        """Test one signal per removed emoji."""
        guild = SimpleNamespace(id=GUILD_ID)
        before = [SimpleNamespace(id=1), SimpleNamespace(id=2), SimpleNamespace(id=3)]
        after = [SimpleNamespace(id=1), SimpleNamespace(id=4)]

        events = normalizer.from_emojis_update(guild, before, after)

        assert [e.target_id for e in events] == [2, 3]
        assert all(e.signal_type is SignalType.EMOJI_DELETE for e in events)

    def test_emoji_addition_ignored(self, normalizer):
        """Test added emojis are ignored."""
        guild = SimpleNamespace(id=GUILD_ID)
        assert normalizer.from_emojis_update(guild, [], [SimpleNamespace(id=9)]) == []

    def test_webhook_create_entry(self, normalizer):
        """Test a webhook creation audit entry."""
        entry = MagicMock()
        entry.action = discord.AuditLogAction.webhook_create
        entry.guild.id = GUILD_ID
        entry.user_id = 60
        entry.id = 8000
        entry.target.id = 8001
        entry.created_at = datetime(2026, 3, 1, 12, 0, 0, tzinfo=NY_TZ)

        event = normalizer.from_audit_entry(entry)

        assert event.signal_type is SignalType.WEBHOOK_CREATE
        assert event.actor_id == 60
        assert event.target_id == 8001

    def test_other_audit_entries_ignored(self, normalizer):
        """Test unrelated audit entries are ignored."""
        entry = MagicMock()
        entry.action = discord.AuditLogAction.member_update
        assert normalizer.from_audit_entry(entry) is None

    def test_member_ban(self, normalizer):
        """Test a member ban."""
        event = normalizer.from_member_ban(SimpleNamespace(id=GUILD_ID), SimpleNamespace(id=50))

        assert event.signal_type is SignalType.BAN_ADD
        assert event.target_id == 50
        assert event.actor_id is None


# =============================================================================
# Feedback Gate
# =============================================================================

class TestFeedbackGate:
    """Tests that the engine's own actions never become signals."""

    def test_own_ban_suppressed(self, normalizer, suppression):
        """Test the bot's own ban echo is dropped."""
        suppression.mark(GUILD_ID, 50, BAN_ACTION)

        assert normalizer.from_member_ban(SimpleNamespace(id=GUILD_ID), SimpleNamespace(id=50)) is None
        assert normalizer.suppressed == 1

    def test_suppression_is_per_guild(self, normalizer, suppression):
        """Test a ban mark only applies to its guild."""
        suppression.mark(GUILD_ID + 1, 50, BAN_ACTION)
        assert normalizer.from_member_ban(SimpleNamespace(id=GUILD_ID), SimpleNamespace(id=50)) is not None

    def test_suppression_expires(self, normalizer, suppression, clock):
        """Test ban marks expire."""
        suppression.mark(GUILD_ID, 50, BAN_ACTION)
        clock.advance(31)

        assert normalizer.from_member_ban(SimpleNamespace(id=GUILD_ID), SimpleNamespace(id=50)) is not None

    def test_own_audit_entry_dropped(self, normalizer):
        """Test the bot's own audit entries are dropped."""
        entry = MagicMock()
        entry.action = discord.AuditLogAction.webhook_create
        entry.guild.id = GUILD_ID
        entry.user_id = BOT_ID
        entry.created_at = datetime(2026, 3, 1, 12, 0, 0, tzinfo=NY_TZ)

        assert normalizer.from_audit_entry(entry) is None
        assert normalizer.suppressed == 1

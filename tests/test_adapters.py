"""
Bastion - Discord Adapter Tests
===============================

Tests for the audit facility, the guard event cog and the health handler.
"""

import json
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from bastion.core.health import HealthCheckServer
from bastion.handlers.guard.cog import GuardEvents
from bastion.services.guard import DiscordAuditFacility, SignalType

from conftest import GUILD_ID


class FakeAuditLog:
    """Async iterator standing in for guild.audit_logs()."""

    def __init__(self, entries):
        self.entries = list(entries)
        self.kwargs = None

    def __call__(self, **kwargs):
        self.kwargs = kwargs
        return self

    def __aiter__(self):
        self._iter = iter(self.entries)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


# =============================================================================
# Audit Facility
# =============================================================================

class TestDiscordAuditFacility:
    """Tests for find_recent_actor."""

    @pytest.mark.asyncio
    async def test_recent_entry_found(self, fake_bot, fake_guild, clock):
        """Test a matching audit entry resolves the actor."""
        fake_guild.audit_logs = FakeAuditLog([
            SimpleNamespace(created_at=clock(), user=SimpleNamespace(id=50)),
        ])

        result = await DiscordAuditFacility(fake_bot).find_recent_actor(
            GUILD_ID, SignalType.CHANNEL_DELETE, clock(),
        )

        assert result == (50, True)
        assert fake_guild.audit_logs.kwargs["limit"] == 5

    @pytest.mark.asyncio
    async def test_old_entry_ignored(self, fake_bot, fake_guild, clock):
        """Test entries older than the event are not used."""
        fake_guild.audit_logs = FakeAuditLog([
            SimpleNamespace(created_at=clock() - timedelta(minutes=5), user=SimpleNamespace(id=50)),
        ])

        result = await DiscordAuditFacility(fake_bot).find_recent_actor(
            GUILD_ID, SignalType.ROLE_DELETE, clock(),
        )
        assert result == (None, False)

    @pytest.mark.asyncio
    async def test_unknown_guild(self, fake_bot, clock):
        """Test a guild the bot can't see resolves to unknown."""
        result = await DiscordAuditFacility(fake_bot).find_recent_actor(
            12345, SignalType.ROLE_DELETE, clock(),
        )
        assert result == (None, False)

    @pytest.mark.asyncio
    async def test_raid_signal_has_no_audit_action(self, fake_bot, clock):
        """Test raid signals have nothing to look up."""
        result = await DiscordAuditFacility(fake_bot).find_recent_actor(
            GUILD_ID, SignalType.JOIN, clock(),
        )
        assert result == (None, False)


# =============================================================================
# Event Cog
# =============================================================================

class TestGuardEvents:
    """Tests for the gateway listener shim."""

    @pytest.fixture
    def bot(self, normalizer):
        bot = MagicMock()
        bot.guard_normalizer = normalizer
        return bot

    @pytest.mark.asyncio
    async def test_member_join_ingested(self, bot, clock):
        """Test member joins reach the engine."""
        member = MagicMock()
        member.id = 42
        member.guild.id = GUILD_ID
        member.joined_at = clock()

        await GuardEvents(bot).on_member_join(member)

        event = bot.guard_engine.ingest_event.call_args.args[0]
        assert event.signal_type is SignalType.JOIN
        assert event.actor_id == 42

    @pytest.mark.asyncio
    async def test_skipped_message_not_ingested(self, bot):
        """Test bot messages never reach the engine."""
        message = MagicMock()
        message.author.bot = True

        await GuardEvents(bot).on_message(message)

        bot.guard_engine.ingest_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_emoji_removals_ingested(self, bot):
        """Test each removed emoji is ingested separately."""
        guild = SimpleNamespace(id=GUILD_ID)

        await GuardEvents(bot).on_guild_emojis_update(
            guild, [SimpleNamespace(id=1), SimpleNamespace(id=2)], [],
        )

        assert bot.guard_engine.ingest_event.call_count == 2

    @pytest.mark.asyncio
    async def test_normalize_error_contained(self, bot):
        """Test a listener survives a normalizer error."""
        bot.guard_normalizer = MagicMock()
        bot.guard_normalizer.from_role_delete.side_effect = AttributeError("guild")

        await GuardEvents(bot).on_guild_role_delete(MagicMock())

        bot.guard_engine.ingest_event.assert_not_called()


# =============================================================================
# Health
# =============================================================================

class TestHealthCheck:
    """Tests for the /health handler."""

    @pytest.mark.asyncio
    async def test_reports_guard_stats(self, engine):
        """Test the health response includes guard counters."""
        bot = MagicMock()
        bot.is_ready.return_value = True
        bot.guilds = [1, 2]
        bot.guard_engine = engine

        response = await HealthCheckServer(bot).health_handler(MagicMock())
        body = json.loads(response.text)

        assert body["status"] == "healthy"
        assert body["guilds"] == 2
        assert body["guard"]["dropped_events"] == 0

    @pytest.mark.asyncio
    async def test_starting(self):
        """Test the health response before the bot is ready."""
        bot = MagicMock(spec=["is_ready", "guilds"])
        bot.is_ready.return_value = False
        bot.guilds = []

        response = await HealthCheckServer(bot).health_handler(MagicMock())
        body = json.loads(response.text)

        assert body["status"] == "starting"
        assert "guard" not in body

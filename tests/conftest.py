"""
Bastion - Test Fixtures
=======================

Shared fixtures for all tests.

Discord objects are faked with small classes built on the real
discord.PermissionOverwrite / discord.Permissions, so overwrite
snapshots and restores are checked against discord.py's own bit logic.
"""

import asyncio
import os
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

# Set up test environment before importing bastion modules
os.environ["TESTING"] = "1"
os.environ.setdefault("DISCORD_TOKEN", "test-token")
os.environ["BASTION_LOG_TO_FILE"] = "0"

from bastion.core.config import NY_TZ  # noqa: E402
from bastion.services.guard import (  # noqa: E402
    AttributionResolver,
    GuardEngine,
    LockdownResult,
    MitigationActuator,
    MitigationRecord,
    Policy,
    SignalCategory,
    SignalEvent,
    SignalNormalizer,
    SignalType,
    SuppressionSet,
)
from bastion.services.guard.policy import DEFAULT_POLICIES  # noqa: E402


GUILD_ID = 1000
OTHER_GUILD_ID = 2000
BOT_ID = 999


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Injectable clock; time only moves when a test advances it."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=NY_TZ)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakePolicyProvider:
    """Returns configured policies; None (use default) otherwise."""

    def __init__(self) -> None:
        self.policies: Dict[Tuple[int, SignalCategory], Policy] = {}
        self.error: Optional[Exception] = None
        self.delay: float = 0.0
        self.calls = 0

    def set(self, community_id: int, category: SignalCategory, policy: Policy) -> None:
        self.policies[(community_id, category)] = policy

    async def get_policy(self, community_id: int, category: SignalCategory) -> Optional[Policy]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.policies.get((community_id, category))

    def fallback(self, community_id: int, category: SignalCategory) -> Policy:
        return DEFAULT_POLICIES[category]


class FakeAuditFacility:
    """Answers lookups from a queue of (actor_id, found) results."""

    def __init__(self) -> None:
        self.results: List[Tuple[Optional[int], bool]] = []
        self.default: Tuple[Optional[int], bool] = (None, False)
        self.delay: float = 0.0
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[int, SignalType, datetime]] = []

    async def find_recent_actor(self, community_id, signal_type, since):
        self.calls.append((community_id, signal_type, since))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return self.default


class FakePlatform:
    """Records lock / unlock / ban calls."""

    def __init__(self) -> None:
        self.locks: List[int] = []
        self.unlocks: List[int] = []
        self.bans: List[Tuple[int, int]] = []
        self.lock_result = LockdownResult(success_count=3)
        self.unlock_result = LockdownResult(success_count=3)
        self.ban_error: Optional[Exception] = None
        self.lock_error: Optional[Exception] = None
        self.delay: float = 0.0

    async def lock_channels(self, community_id: int, reason: str) -> LockdownResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.lock_error is not None:
            raise self.lock_error
        self.locks.append(community_id)
        return self.lock_result

    async def unlock_channels(self, community_id: int, reason: str) -> LockdownResult:
        self.unlocks.append(community_id)
        return self.unlock_result

    async def ban_actor(self, community_id: int, actor_id: int, reason: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.ban_error is not None:
            raise self.ban_error
        self.bans.append((community_id, actor_id))


class FakeSink:
    def __init__(self) -> None:
        self.records: List[MitigationRecord] = []
        self.error: Optional[Exception] = None

    async def publish(self, record: MitigationRecord) -> None:
        if self.error is not None:
            raise self.error
        self.records.append(record)


@pytest.fixture
def policies():
    return FakePolicyProvider()


@pytest.fixture
def audit():
    return FakeAuditFacility()


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def suppression(clock):
    return SuppressionSet(clock=clock)


@pytest.fixture
def resolver(audit, clock):
    return AttributionResolver(audit, timeout=0.05, retry_delay=0, clock=clock)


@pytest.fixture
def actuator(platform, suppression, clock):
    return MitigationActuator(platform, suppression, action_timeout=0.2, clock=clock)


@pytest.fixture
def normalizer(suppression, clock):
    return SignalNormalizer(suppression, clock=clock, self_id=BOT_ID)


@pytest.fixture
def engine(policies, resolver, actuator, sink, clock):
    guard = GuardEngine(
        policies=policies,
        resolver=resolver,
        actuator=actuator,
        sink=sink,
        queue_depth=50,
        idle_ttl=900,
        clock=clock,
        policy_timeout=0.2,
    )
    guard.self_id = BOT_ID
    return guard


@pytest.fixture
def make_event(clock):
    """Build a SignalEvent stamped with the fake clock's current time."""
    counter = {"source": 0}

    def _make(
        signal_type: SignalType,
        actor_id: Optional[int] = None,
        community_id: int = GUILD_ID,
        source_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> SignalEvent:
        if source_id is None:
            counter["source"] += 1
            source_id = counter["source"]
        return SignalEvent(
            community_id=community_id,
            signal_type=signal_type,
            actor_id=actor_id,
            timestamp=timestamp or clock(),
            source_id=source_id,
        )

    return _make


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path for testing."""
    return tmp_path / "test_bastion.db"


@pytest.fixture
def test_db(temp_db_path, monkeypatch):
    """Create a fresh test database instance."""
    from bastion.core.database import manager as db_module

    # Reset singleton
    db_module.DatabaseManager._instance = None

    # Patch the DB path
    monkeypatch.setattr(db_module, "DB_PATH", temp_db_path)
    monkeypatch.setattr(db_module, "DATA_DIR", temp_db_path.parent)

    db = db_module.DatabaseManager()

    yield db

    db.close()
    db_module.DatabaseManager._instance = None


# =============================================================================
# Discord Fakes
# =============================================================================

class FakeRole:
    def __init__(self, role_id: int, name: str = "@everyone") -> None:
        self.id = role_id
        self.name = name

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other) -> bool:
        return isinstance(other, FakeRole) and other.id == self.id


class FakeTextChannel:
    """Text channel holding real PermissionOverwrite objects."""

    def __init__(
        self,
        guild: "FakeGuild",
        channel_id: int,
        name: str,
        overwrite: Optional[discord.PermissionOverwrite] = None,
    ) -> None:
        self.guild = guild
        self.id = channel_id
        self.name = name
        self.overwrites: Dict[FakeRole, discord.PermissionOverwrite] = {}
        if overwrite is not None:
            self.overwrites[guild.default_role] = overwrite
        self.set_permissions = AsyncMock(side_effect=self._set_permissions)

    def overwrites_for(self, role: FakeRole) -> discord.PermissionOverwrite:
        current = self.overwrites.get(role)
        if current is None:
            return discord.PermissionOverwrite()
        return discord.PermissionOverwrite.from_pair(*current.pair())

    def permissions_for(self, role: FakeRole) -> SimpleNamespace:
        # @everyone can send unless the channel denies it
        return SimpleNamespace(send_messages=self.overwrites_for(role).send_messages is not False)

    async def _set_permissions(self, target, *, overwrite=None, reason=None) -> None:
        if overwrite is None:
            self.overwrites.pop(target, None)
        else:
            self.overwrites[target] = overwrite


class FakeGuild:
    def __init__(self, guild_id: int = GUILD_ID, owner_id: int = 1) -> None:
        self.id = guild_id
        self.name = "Test Guild"
        self.owner_id = owner_id
        self.default_role = FakeRole(guild_id)
        self.text_channels: List[FakeTextChannel] = []
        self.ban = AsyncMock()

    def add_channel(
        self,
        channel_id: int,
        name: str,
        overwrite: Optional[discord.PermissionOverwrite] = None,
    ) -> FakeTextChannel:
        channel = FakeTextChannel(self, channel_id, name, overwrite)
        self.text_channels.append(channel)
        return channel

    def get_channel(self, channel_id: int) -> Optional[FakeTextChannel]:
        for channel in self.text_channels:
            if channel.id == channel_id:
                return channel
        return None


@pytest.fixture
def fake_guild():
    return FakeGuild()


@pytest.fixture
def fake_bot(fake_guild):
    """Bot exposing get_guild / get_channel / user like commands.Bot."""
    bot = MagicMock()
    bot.user.id = BOT_ID
    bot.get_guild = MagicMock(side_effect=lambda gid: fake_guild if gid == fake_guild.id else None)
    bot.get_channel = MagicMock(return_value=None)
    return bot

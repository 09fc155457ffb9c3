"""
Bastion - Mitigation Actuator Tests
===================================

Tests for policy gating, whitelist handling, failure records and manual lock/unlock.
"""

from dataclasses import replace

import pytest

from bastion.services.guard import (
    LockdownResult,
    MitigationAction,
    SignalCategory,
    SignalType,
    Trigger,
    TriggerKind,
)
from bastion.services.guard.policy import DEFAULT_POLICIES

from conftest import GUILD_ID


RAID = DEFAULT_POLICIES[SignalCategory.RAID]
NUKE = DEFAULT_POLICIES[SignalCategory.NUKE]


def make_trigger(clock, category=SignalCategory.NUKE, actor_ids=(50,), kind=TriggerKind.AGGREGATE):
    signal = SignalType.CHANNEL_DELETE if category is SignalCategory.NUKE else SignalType.JOIN
    return Trigger(
        community_id=GUILD_ID,
        category=category,
        kind=kind,
        signal_type=signal,
        count=10,
        window_seconds=60,
        actor_ids=tuple(actor_ids),
        timestamp=clock(),
    )


# =============================================================================
# Gating
# =============================================================================

class TestGating:
    """Tests for which actions a trigger leads to."""

    @pytest.mark.asyncio
    async def test_alert_only_default(self, actuator, platform, clock):
        """Test the default policy only reports."""
        records = await actuator.mitigate(make_trigger(clock), NUKE)

        assert [r.action for r in records] == [MitigationAction.NONE]
        assert platform.locks == [] and platform.bans == []

    @pytest.mark.asyncio
    async def test_raid_auto_lock(self, actuator, platform, clock):
        """Test a raid trigger locks when auto_lock is on."""
        policy = replace(RAID, auto_lock=True)
        records = await actuator.mitigate(make_trigger(clock, SignalCategory.RAID, actor_ids=(1, 2, 3)), policy)

        assert [r.action for r in records] == [MitigationAction.LOCKED]
        assert platform.locks == [GUILD_ID]

    @pytest.mark.asyncio
    async def test_raid_never_bans(self, actuator, platform, clock):
        """Test raid triggers never ban, even with auto_ban set."""
        policy = replace(RAID, auto_ban=True)
        await actuator.mitigate(make_trigger(clock, SignalCategory.RAID, actor_ids=(1, 2)), policy)
        assert platform.bans == []

    @pytest.mark.asyncio
    async def test_nuke_auto_ban_known_actor(self, actuator, platform, clock):
        """Test a nuke trigger bans its attributed actor."""
        policy = replace(NUKE, auto_ban=True)
        records = await actuator.mitigate(make_trigger(clock, actor_ids=(50,)), policy)

        assert [r.action for r in records] == [MitigationAction.BANNED]
        assert records[0].actor_ids == (50,)
        assert platform.bans == [(GUILD_ID, 50)]

    @pytest.mark.asyncio
    async def test_unknown_actor_never_banned(self, actuator, platform, clock):
        """Test an unattributed nuke trigger is reported, not banned."""
        policy = replace(NUKE, auto_ban=True)
        records = await actuator.mitigate(make_trigger(clock, actor_ids=()), policy)

        assert [r.action for r in records] == [MitigationAction.NONE]
        assert records[0].actor_label == "unknown"
        assert platform.bans == []

    @pytest.mark.asyncio
    async def test_unknown_actor_still_locks(self, actuator, platform, clock):
        """Test locking doesn't depend on knowing the actor."""
        policy = replace(NUKE, auto_ban=True, auto_lock=True)
        records = await actuator.mitigate(make_trigger(clock, actor_ids=()), policy)

        assert {r.action for r in records} == {MitigationAction.LOCKED, MitigationAction.NONE}
        assert platform.locks == [GUILD_ID]
        assert platform.bans == []

    @pytest.mark.asyncio
    async def test_whitelisted_actor_not_mitigated(self, actuator, platform, clock):
        """Test a whitelisted actor is neither locked out nor banned."""
        policy = replace(NUKE, auto_ban=True, auto_lock=True).with_whitelist([50])
        records = await actuator.mitigate(make_trigger(clock, kind=TriggerKind.BURST), policy)

        assert len(records) == 1
        assert records[0].action is MitigationAction.NONE
        assert records[0].detail == "Actor is whitelisted"
        assert platform.bans == [] and platform.locks == []

    @pytest.mark.asyncio
    async def test_unmitigable_trigger_not_acted_on(self, actuator, platform, clock):
        """Test a threshold reached with whitelisted help neither locks nor bans."""
        policy = replace(NUKE, auto_ban=True, auto_lock=True).with_whitelist([1])
        trigger = replace(make_trigger(clock, actor_ids=(77,)), mitigable=False)

        records = await actuator.mitigate(trigger, policy)

        assert [r.action for r in records] == [MitigationAction.NONE]
        assert records[0].actor_ids == (77,)
        assert platform.bans == [] and platform.locks == []


# =============================================================================
# Feedback Suppression
# =============================================================================

class TestBanSuppression:
    """Tests for the self-ban suppression mark."""

    @pytest.mark.asyncio
    async def test_ban_marks_suppression_first(self, actuator, platform, suppression, clock):
        """Test the ban is marked before the platform call."""
        seen = []

        async def ban_actor(community_id, actor_id, reason):
            seen.append(suppression.is_suppressed(community_id, actor_id, "ban"))

        platform.ban_actor = ban_actor
        await actuator.mitigate(make_trigger(clock), replace(NUKE, auto_ban=True))

        assert seen == [True]

    @pytest.mark.asyncio
    async def test_second_ban_for_same_actor_skipped(self, actuator, platform, clock):
        """Test an actor already being banned isn't banned again."""
        policy = replace(NUKE, auto_ban=True)
        await actuator.mitigate(make_trigger(clock, kind=TriggerKind.BURST), policy)
        records = await actuator.mitigate(make_trigger(clock), policy)

        assert platform.bans == [(GUILD_ID, 50)]
        assert records[0].action is MitigationAction.NONE
        assert records[0].detail == "Already banned"


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Tests for failed and timed-out platform calls."""

    @pytest.mark.asyncio
    async def test_ban_failure_recorded(self, actuator, platform, clock):
        """Test a failed ban becomes a failed record."""
        platform.ban_error = RuntimeError("Missing Permissions")
        records = await actuator.mitigate(make_trigger(clock), replace(NUKE, auto_ban=True))

        assert records[0].action is MitigationAction.BANNED
        assert records[0].failed is True
        assert "Missing Permissions" in records[0].error

    @pytest.mark.asyncio
    async def test_lock_timeout_recorded(self, actuator, platform, clock):
        """Test a lock that hangs times out into a failed record."""
        platform.delay = 1
        records = await actuator.mitigate(make_trigger(clock, SignalCategory.RAID), replace(RAID, auto_lock=True))

        assert records[0].failed is True
        assert "timed out" in records[0].error

    @pytest.mark.asyncio
    async def test_all_channels_failed_recorded(self, actuator, platform, clock):
        """Test a lock where every channel failed is reported as failed."""
        platform.lock_result = LockdownResult(failed_count=2, errors=["#a: Missing permissions"])
        records = await actuator.mitigate(make_trigger(clock, SignalCategory.RAID), replace(RAID, auto_lock=True))

        assert records[0].failed is True
        assert "#a" in records[0].error

    @pytest.mark.asyncio
    async def test_failed_ban_not_retried(self, actuator, platform, clock):
        """Test a failed ban is attempted once only."""
        platform.ban_error = RuntimeError("boom")
        await actuator.mitigate(make_trigger(clock), replace(NUKE, auto_ban=True))

        platform.ban_error = None
        records = await actuator.mitigate(make_trigger(clock), replace(NUKE, auto_ban=True))
        assert platform.bans == []
        assert records[0].detail == "Already banned"

    @pytest.mark.asyncio
    async def test_already_locked_is_none(self, actuator, platform, clock):
        """Test locking a locked guild reports no action."""
        platform.lock_result = LockdownResult(skipped_count=4)
        records = await actuator.mitigate(make_trigger(clock, SignalCategory.RAID), replace(RAID, auto_lock=True))

        assert records[0].action is MitigationAction.NONE
        assert records[0].detail == "Already locked"


# =============================================================================
# Manual Lock / Unlock
# =============================================================================

class TestManual:
    """Tests for explicit lockdown operations."""

    @pytest.mark.asyncio
    async def test_lock_community(self, actuator, platform):
        """Test a manual lockdown."""
        record = await actuator.lock_community(GUILD_ID, "panic")

        assert record.action is MitigationAction.LOCKED
        assert record.trigger is TriggerKind.MANUAL
        assert platform.locks == [GUILD_ID]

    @pytest.mark.asyncio
    async def test_unlock_community(self, actuator, platform):
        """Test lifting a lockdown."""
        record = await actuator.unlock_community(GUILD_ID)

        assert record.action is MitigationAction.UNLOCKED
        assert platform.unlocks == [GUILD_ID]

    @pytest.mark.asyncio
    async def test_unlock_when_not_locked(self, actuator, platform):
        """Test unlocking a guild that isn't locked."""
        platform.unlock_result = LockdownResult()
        record = await actuator.unlock_community(GUILD_ID)

        assert record.action is MitigationAction.NONE
        assert record.detail == "Not locked"

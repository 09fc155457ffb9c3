"""
Bastion - Guard Mitigation Actuator
===================================

Turns alert triggers into lock / ban actions.

DESIGN:
    Gating rules:
    - A trigger whose actor is whitelisted is never mitigated (record: none)
    - Neither is a trigger the evaluator marked not mitigable, where
      whitelisted actors' signals were needed to reach the threshold
    - Lock applies to both categories when the policy has auto_lock, and is
      evaluated independently of whether the actor is known
    - Ban needs a nuke trigger, auto_ban, and a known actor
    - With no applicable action the trigger still yields one none record

    Bans are marked in the suppression set BEFORE the platform call so the
    ban event the platform echoes back is never ingested. Every platform
    call is bounded by action_timeout; failures become failed records and
    are never retried.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional

from bastion.core.config import NY_TZ
from bastion.core.logger import logger

from .interfaces import PlatformActions
from .models import (
    LockdownResult,
    MitigationAction,
    MitigationRecord,
    Policy,
    SignalCategory,
    Trigger,
    TriggerKind,
)
from .suppression import SuppressionSet


BAN_ACTION = "ban"


class MitigationActuator:
    """Applies policy-gated mitigation and reports every outcome."""

    def __init__(
        self,
        platform: PlatformActions,
        suppression: SuppressionSet,
        action_timeout: float,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.platform = platform
        self.suppression = suppression
        self.action_timeout = action_timeout
        self._clock = clock or (lambda: datetime.now(NY_TZ))

    # =========================================================================
    # Automatic Mitigation
    # =========================================================================

    async def mitigate(self, trigger: Trigger, policy: Policy) -> List[MitigationRecord]:
        """
        Decide and apply mitigation for one trigger.

        Returns:
            One record per applied action, or a single none record.
        """
        whitelisted = [a for a in trigger.actor_ids if policy.is_whitelisted(a)]
        if trigger.category is SignalCategory.NUKE and whitelisted:
            logger.tree("Mitigation Skipped", [
                ("Guild ID", str(trigger.community_id)),
                ("Actor", ", ".join(str(a) for a in whitelisted)),
                ("Reason", "Whitelisted"),
            ], emoji="🏳️")
            return [MitigationRecord.from_trigger(
                trigger, MitigationAction.NONE, detail="Actor is whitelisted",
            )]

        if not trigger.mitigable:
            logger.tree("Mitigation Skipped", [
                ("Guild ID", str(trigger.community_id)),
                ("Actor", ", ".join(str(a) for a in trigger.actor_ids) or "unknown"),
                ("Reason", "Threshold reached with whitelisted activity"),
            ], emoji="🏳️")
            return [MitigationRecord.from_trigger(
                trigger, MitigationAction.NONE, detail="Mostly whitelisted activity",
            )]

        records: List[MitigationRecord] = []

        if policy.auto_lock:
            records.append(await self._lock(trigger))

        if trigger.category is SignalCategory.NUKE and policy.auto_ban:
            if trigger.actor_ids:
                for actor_id in trigger.actor_ids:
                    records.append(await self._ban(trigger, actor_id))
            else:
                records.append(MitigationRecord.from_trigger(
                    trigger, MitigationAction.NONE, detail="Actor unknown, ban skipped",
                ))

        if not records:
            records.append(MitigationRecord.from_trigger(
                trigger, MitigationAction.NONE, detail="Alert only",
            ))
        return records

    async def _lock(self, trigger: Trigger) -> MitigationRecord:
        reason = f"Bastion: {trigger.category.value} detected ({trigger.count} in {trigger.window_seconds}s)"
        try:
            result: LockdownResult = await asyncio.wait_for(
                self.platform.lock_channels(trigger.community_id, reason),
                timeout=self.action_timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(trigger, MitigationAction.LOCKED, f"Lock timed out after {self.action_timeout}s")
        except Exception as e:
            return self._failed(trigger, MitigationAction.LOCKED, f"{type(e).__name__}: {str(e)[:100]}")

        if result.all_failed:
            return self._failed(trigger, MitigationAction.LOCKED, "; ".join(result.errors[:3]) or "All channels failed")

        if result.success_count == 0:
            return MitigationRecord.from_trigger(
                trigger, MitigationAction.NONE, detail="Already locked",
            )

        return MitigationRecord.from_trigger(
            trigger, MitigationAction.LOCKED, detail=self._lock_detail(result),
        )

    async def _ban(self, trigger: Trigger, actor_id: int) -> MitigationRecord:
        actor_ids = (actor_id,)

        if self.suppression.is_suppressed(trigger.community_id, actor_id, BAN_ACTION):
            return MitigationRecord.from_trigger(
                trigger, MitigationAction.NONE, actor_ids=actor_ids, detail="Already banned",
            )

        self.suppression.mark(trigger.community_id, actor_id, BAN_ACTION)

        kind = "burst" if trigger.kind is TriggerKind.BURST else "mass"
        reason = f"Bastion anti-nuke: {kind} {trigger.signal_type.value if trigger.signal_type else 'action'}"
        try:
            await asyncio.wait_for(
                self.platform.ban_actor(trigger.community_id, actor_id, reason),
                timeout=self.action_timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(
                trigger, MitigationAction.BANNED, f"Ban timed out after {self.action_timeout}s", actor_ids,
            )
        except Exception as e:
            return self._failed(
                trigger, MitigationAction.BANNED, f"{type(e).__name__}: {str(e)[:100]}", actor_ids,
            )

        logger.tree("Nuke Actor Banned", [
            ("Guild ID", str(trigger.community_id)),
            ("Actor ID", str(actor_id)),
            ("Trigger", trigger.kind.value),
        ], emoji="🔨")

        return MitigationRecord.from_trigger(trigger, MitigationAction.BANNED, actor_ids=actor_ids)

    # =========================================================================
    # Manual Lock / Unlock
    # =========================================================================

    async def lock_community(
        self,
        community_id: int,
        reason: str = "Manual lockdown",
        category: SignalCategory = SignalCategory.RAID,
    ) -> MitigationRecord:
        """Explicit lockdown, using the same idempotent lock path."""
        trigger = self._manual_trigger(community_id, category)
        try:
            result: LockdownResult = await asyncio.wait_for(
                self.platform.lock_channels(community_id, reason),
                timeout=self.action_timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(trigger, MitigationAction.LOCKED, f"Lock timed out after {self.action_timeout}s")
        except Exception as e:
            return self._failed(trigger, MitigationAction.LOCKED, f"{type(e).__name__}: {str(e)[:100]}")

        if result.all_failed:
            return self._failed(trigger, MitigationAction.LOCKED, "; ".join(result.errors[:3]))
        if result.success_count == 0:
            return MitigationRecord.from_trigger(trigger, MitigationAction.NONE, detail="Already locked")
        return MitigationRecord.from_trigger(
            trigger, MitigationAction.LOCKED, detail=self._lock_detail(result),
        )

    async def unlock_community(
        self,
        community_id: int,
        reason: str = "Lockdown lifted",
        category: SignalCategory = SignalCategory.RAID,
    ) -> MitigationRecord:
        """Lift a lockdown, restoring every channel's prior overwrite."""
        trigger = self._manual_trigger(community_id, category)
        try:
            result: LockdownResult = await asyncio.wait_for(
                self.platform.unlock_channels(community_id, reason),
                timeout=self.action_timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(trigger, MitigationAction.UNLOCKED, f"Unlock timed out after {self.action_timeout}s")
        except Exception as e:
            return self._failed(trigger, MitigationAction.UNLOCKED, f"{type(e).__name__}: {str(e)[:100]}")

        if result.all_failed:
            return self._failed(trigger, MitigationAction.UNLOCKED, "; ".join(result.errors[:3]))
        if result.success_count == 0:
            return MitigationRecord.from_trigger(trigger, MitigationAction.NONE, detail="Not locked")
        return MitigationRecord.from_trigger(
            trigger, MitigationAction.UNLOCKED, detail=f"{result.success_count} channels restored",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _manual_trigger(self, community_id: int, category: SignalCategory) -> Trigger:
        return Trigger(
            community_id=community_id,
            category=category,
            kind=TriggerKind.MANUAL,
            signal_type=None,
            count=0,
            window_seconds=0,
            actor_ids=(),
            timestamp=self._clock(),
        )

    @staticmethod
    def _lock_detail(result: LockdownResult) -> str:
        detail = f"{result.success_count} channels locked"
        if result.skipped_count:
            detail += f", {result.skipped_count} already locked"
        if result.failed_count:
            detail += f", {result.failed_count} failed"
        return detail

    @staticmethod
    def _failed(
        trigger: Trigger,
        action: MitigationAction,
        error: str,
        actor_ids: Optional[tuple] = None,
    ) -> MitigationRecord:
        logger.error("Mitigation Failed", [
            ("Guild ID", str(trigger.community_id)),
            ("Action", action.value),
            ("Error", error[:100]),
        ])
        return MitigationRecord.from_trigger(
            trigger, action, actor_ids=actor_ids, failed=True, error=error,
        )


__all__ = ["MitigationActuator", "BAN_ACTION"]

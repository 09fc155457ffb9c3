"""
Bastion - Guard Engine
======================

Per-community serialized pipeline for raid and anti-nuke protection.

DESIGN:
    ingest() never blocks and never raises. Each community gets a bounded
    queue and at most one worker task; the worker processes that
    community's events strictly in arrival order, so two events can never
    both read a stale count and both fire an alert. Communities are
    independent: one community waiting on the audit log or a ban call does
    not delay any other.

    When a community's queue is full the oldest pending event is dropped.

    Pipeline per event:
        policy → attribution (nuke, actor unknown) → evaluator
        → actuator (per trigger) → alert sink (fire-and-forget)

    A GuardStateError resets only the affected community's state. Any
    other failure is logged and the worker moves on to the next event.
"""

import asyncio
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from bastion.core.config import NY_TZ
from bastion.core.logger import logger
from bastion.utils.async_utils import create_safe_task

from .actuator import MitigationActuator
from .attribution import AttributionResolver
from .constants import IDLE_SWEEP_INTERVAL, POLICY_TIMEOUT
from .evaluator import CommunityGuardState, ThresholdEvaluator
from .interfaces import AlertSink, PolicyProvider
from .models import (
    GuardStateError,
    MitigationAction,
    MitigationRecord,
    Policy,
    SignalCategory,
    SignalEvent,
    SignalType,
)


class GuardEngine:
    """
    Raid and anti-nuke detection engine.

    Attributes:
        policies: Supplies per-community policies.
        resolver: Audit-log attribution for nuke signals.
        evaluator: Window counting and alert decisions.
        actuator: Lock / ban / unlock.
        sink: Receives every MitigationRecord.
    """

    def __init__(
        self,
        policies: PolicyProvider,
        resolver: AttributionResolver,
        actuator: MitigationActuator,
        sink: AlertSink,
        evaluator: Optional[ThresholdEvaluator] = None,
        queue_depth: int = 200,
        idle_ttl: int = 900,
        clock: Optional[Callable[[], datetime]] = None,
        policy_timeout: float = POLICY_TIMEOUT,
    ) -> None:
        self.policies = policies
        self.resolver = resolver
        self.actuator = actuator
        self.sink = sink
        self.evaluator = evaluator or ThresholdEvaluator()
        self.queue_depth = queue_depth
        self.idle_ttl = idle_ttl
        self.policy_timeout = policy_timeout
        self.self_id: Optional[int] = None
        self._clock = clock or (lambda: datetime.now(NY_TZ))

        self._states: Dict[int, CommunityGuardState] = {}
        self._queues: Dict[int, Deque[SignalEvent]] = {}
        self._workers: Dict[int, asyncio.Task] = {}
        self._alert_tasks: Set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None

        # Counters for health reporting
        self.processed_events = 0
        self.dropped_events = 0
        self.state_resets = 0
        self.alerts_published = 0

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest(
        self,
        community_id: int,
        signal_type: SignalType,
        actor_id: Optional[int],
        timestamp: datetime,
        *,
        target_id: Optional[int] = None,
        source_id: Optional[int] = None,
    ) -> None:
        """Queue one signal for its community. Always returns normally."""
        self.ingest_event(SignalEvent(
            community_id=community_id,
            signal_type=signal_type,
            actor_id=actor_id,
            timestamp=timestamp,
            target_id=target_id,
            source_id=source_id,
        ))

    def ingest_event(self, event: SignalEvent) -> None:
        """Queue a pre-built SignalEvent. Always returns normally."""
        try:
            community_id = event.community_id
            queue = self._queues.get(community_id)
            if queue is None:
                queue = self._queues[community_id] = deque(maxlen=self.queue_depth)

            if len(queue) >= self.queue_depth:
                dropped = queue[0]
                self.dropped_events += 1
                logger.warning("Guard Queue Full", [
                    ("Guild ID", str(community_id)),
                    ("Depth", str(self.queue_depth)),
                    ("Dropped", f"{dropped.signal_type.value} @ {dropped.timestamp.isoformat()}"),
                ])

            # deque(maxlen) discards the oldest entry itself
            queue.append(event)

            if community_id not in self._workers:
                self._workers[community_id] = create_safe_task(
                    self._drain(community_id),
                    f"Guard Worker {community_id}",
                )
        except Exception as e:
            logger.error("Guard Ingest Failed", [
                ("Guild ID", str(getattr(event, "community_id", "?"))),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])

    # =========================================================================
    # Worker
    # =========================================================================

    async def _drain(self, community_id: int) -> None:
        """Process a community's queue until it is empty, then exit."""
        queue = self._queues[community_id]
        try:
            while queue:
                event = queue.popleft()
                await self._process_safely(event)
        finally:
            self._workers.pop(community_id, None)
            if not queue:
                self._queues.pop(community_id, None)

    async def _process_safely(self, event: SignalEvent) -> None:
        try:
            await self._process(event)
            self.processed_events += 1
        except GuardStateError as e:
            self.state_resets += 1
            self._states[event.community_id] = CommunityGuardState(
                community_id=event.community_id,
                last_seen=self._clock(),
            )
            logger.error("Guard State Reset", [
                ("Guild ID", str(event.community_id)),
                ("Error", str(e)[:100]),
            ])
        except Exception as e:
            logger.error("Guard Pipeline Failed", [
                ("Guild ID", str(event.community_id)),
                ("Signal", event.signal_type.value),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:100]),
            ])

    async def _process(self, event: SignalEvent) -> None:
        category = event.category
        policy = await self.get_policy(event.community_id, category)
        if not policy.enabled:
            return

        if category is SignalCategory.NUKE and event.actor_id is None:
            actor_id = await self.resolver.resolve(event.community_id, event.signal_type, event.timestamp)
            if actor_id is not None and actor_id == self.self_id:
                logger.debug("Signal Dropped", [
                    ("Guild ID", str(event.community_id)),
                    ("Signal", event.signal_type.value),
                    ("Reason", "Own action"),
                ])
                return
            event = event.with_actor(actor_id)

        now = self._clock()
        state = self._state_for(event.community_id)
        state.last_seen = now

        triggers = self.evaluator.evaluate(state, event, policy, now)
        for trigger in triggers:
            logger.tree(f"{category.value.title()} Alert", [
                ("Guild ID", str(trigger.community_id)),
                ("Trigger", trigger.kind.value),
                ("Signal", trigger.signal_type.value if trigger.signal_type else "-"),
                ("Count", f"{trigger.count} in {trigger.window_seconds}s"),
                ("Actor", ", ".join(str(a) for a in trigger.actor_ids) or "unknown"),
            ], emoji="🚨")

            records = await self.actuator.mitigate(trigger, policy)
            mitigated = any(
                r.action in (MitigationAction.LOCKED, MitigationAction.BANNED) and not r.failed
                for r in records
            )
            self.evaluator.settle(state, category, mitigated)
            for record in records:
                self._publish(record)

    def _state_for(self, community_id: int) -> CommunityGuardState:
        state = self._states.get(community_id)
        if state is None:
            state = self._states[community_id] = CommunityGuardState(community_id=community_id)
        return state

    # =========================================================================
    # Policy
    # =========================================================================

    async def get_policy(self, community_id: int, category: SignalCategory) -> Policy:
        """
        Fetch a policy, falling back to the provider's default on any failure.

        The fallback comes from the provider itself so a timeout here and a
        failed read inside the provider give the same policy, implicit
        whitelist included.
        """
        try:
            policy = await asyncio.wait_for(
                self.policies.get_policy(community_id, category),
                timeout=self.policy_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Policy Lookup Timed Out", [
                ("Guild ID", str(community_id)),
                ("Category", category.value),
                ("Fallback", "Default"),
            ])
            return self.policies.fallback(community_id, category)
        except Exception as e:
            logger.warning("Policy Lookup Failed", [
                ("Guild ID", str(community_id)),
                ("Category", category.value),
                ("Error", str(e)[:100]),
                ("Fallback", "Default"),
            ])
            return self.policies.fallback(community_id, category)

        if policy is None:
            return self.policies.fallback(community_id, category)
        return policy

    # =========================================================================
    # Alerts
    # =========================================================================

    def _publish(self, record: MitigationRecord) -> None:
        """Hand a record to the sink without waiting for it."""
        self.alerts_published += 1
        task = create_safe_task(self.sink.publish(record), "Guard Alert Publish")
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    # =========================================================================
    # Manual Operations
    # =========================================================================

    async def lock_community(self, community_id: int, reason: str = "Manual lockdown") -> MitigationRecord:
        """Explicit lockdown requested by an admin."""
        record = await self.actuator.lock_community(community_id, reason)
        if record.action is MitigationAction.LOCKED and not record.failed:
            self.evaluator.mark_mitigated(self._state_for(community_id), SignalCategory.RAID)
        self._publish(record)
        return record

    async def unlock_community(self, community_id: int, reason: str = "Lockdown lifted") -> MitigationRecord:
        """Lift a lockdown and reset raid detection for the community."""
        record = await self.actuator.unlock_community(community_id, reason)
        state = self._states.get(community_id)
        if state is not None and not record.failed:
            self.evaluator.reset(state, SignalCategory.RAID)
        self._publish(record)
        return record

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def sweep_idle(self) -> int:
        """
        Evict state for communities idle longer than idle_ttl.

        Returns:
            Number of communities evicted.
        """
        cutoff = self._clock() - timedelta(seconds=self.idle_ttl)
        stale = [
            cid for cid, state in self._states.items()
            if cid not in self._workers
            and (state.last_seen is None or state.last_seen <= cutoff)
        ]
        for cid in stale:
            del self._states[cid]

        if stale:
            logger.debug("Guard States Evicted", [
                ("Count", str(len(stale))),
                ("Remaining", str(len(self._states))),
            ])
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(IDLE_SWEEP_INTERVAL)
            self.sweep_idle()

    def start(self) -> None:
        """Start the idle-eviction loop. Safe to call more than once."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = create_safe_task(self._sweep_loop(), "Guard Idle Sweep")
            logger.tree("Guard Engine Started", [
                ("Queue Depth", str(self.queue_depth)),
                ("Idle TTL", f"{self.idle_ttl}s"),
            ], emoji="🛡️")

    async def stop(self) -> None:
        """Stop sweeping and let in-flight work finish."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self.wait_idle()
        logger.info("Guard engine stopped")

    async def wait_idle(self) -> None:
        """Wait until every queue is drained and every alert delivered."""
        while self._workers or self._alert_tasks:
            pending = list(self._workers.values()) + list(self._alert_tasks)
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # Introspection
    # =========================================================================

    def state(self, community_id: int) -> Optional[CommunityGuardState]:
        return self._states.get(community_id)

    def stats(self) -> Dict[str, Any]:
        return {
            "active_communities": len(self._states),
            "active_workers": len(self._workers),
            "queued_events": sum(len(q) for q in self._queues.values()),
            "processed_events": self.processed_events,
            "dropped_events": self.dropped_events,
            "state_resets": self.state_resets,
            "alerts_published": self.alerts_published,
            "attribution_lookups": self.resolver.lookups,
            "attribution_unknown": self.resolver.unknown,
        }


__all__ = ["GuardEngine"]

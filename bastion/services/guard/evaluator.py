"""
Bastion - Guard Threshold Evaluator
===================================

Decides when recorded activity becomes an alert.

DESIGN:
    Aggregate detection: every signal is recorded in its counter's window,
    and the category alerts once the count reaches the threshold (>=). An
    alert sets last_alert_at; further breaches inside the cooldown are
    recorded but suppressed. The window is not cleared by an alert, so a
    sustained raid keeps counting through the cooldown.

    Burst detection (anti-nuke only): each actor's own actions are tracked
    in a short window. Reaching the burst limit flags that actor even when
    the aggregate cooldown is active, then the actor's history restarts.

    Whitelisted actors' raid signals are ignored entirely. Their nuke
    signals still count and still alert, but an aggregate alert is only
    mitigable when the non-whitelisted signals alone reach the threshold.
    Such an unmitigable alert starts the cooldown, but the first mitigable
    breach inside it still fires.

    ALERTING lasts only until the engine reports the mitigation outcome:
    MITIGATED after a successful lock or ban, COUNTING otherwise.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

from bastion.core.logger import logger

from .models import (
    GuardPhase,
    GuardStateError,
    Policy,
    SignalCategory,
    SignalEvent,
    Trigger,
    TriggerKind,
)
from .window import WindowStore


# =============================================================================
# Per-Community State
# =============================================================================

@dataclass
class CategoryState:
    """Debounce anchor, burst history and phase for one category."""

    last_alert_at: Optional[datetime] = None
    last_alert_mitigable: bool = True
    actor_actions: Dict[int, Deque[datetime]] = field(default_factory=dict)
    phase: GuardPhase = GuardPhase.IDLE


@dataclass
class CommunityGuardState:
    """
    Everything the engine knows about one community.

    Created on the community's first event, evicted after inactivity, never
    persisted. Only the community's own worker touches it.
    """

    community_id: int
    windows: WindowStore = field(default_factory=WindowStore)
    categories: Dict[SignalCategory, CategoryState] = field(default_factory=dict)
    last_seen: Optional[datetime] = None

    def category(self, category: SignalCategory) -> CategoryState:
        state = self.categories.get(category)
        if state is None:
            state = self.categories[category] = CategoryState()
        return state


# =============================================================================
# Threshold Evaluator
# =============================================================================

class ThresholdEvaluator:
    """Window count vs policy, with cooldown debounce and per-actor bursts."""

    def evaluate(
        self,
        state: CommunityGuardState,
        event: SignalEvent,
        policy: Policy,
        now: datetime,
    ) -> List[Trigger]:
        """
        Record an event and return the alerts it causes.

        Returns:
            Zero, one or two triggers (a burst and an aggregate alert can
            fire on the same event).
        """
        if not policy.enabled:
            return []

        category = event.category
        cat_state = state.category(category)
        self._expire_phase(cat_state, policy, now)

        if category is SignalCategory.RAID and policy.is_whitelisted(event.actor_id):
            return []

        key, threshold, window_seconds, unique_actors = policy.limit_for(event.signal_type)
        if threshold < 1:
            raise GuardStateError(f"Invalid threshold {threshold} for {key}")

        if not state.windows.record(key, event, window_seconds, now):
            logger.debug("Signal Ignored", [
                ("Guild ID", str(event.community_id)),
                ("Signal", event.signal_type.value),
                ("Reason", "Duplicate or stale"),
            ])
            return []

        if cat_state.phase is GuardPhase.IDLE:
            cat_state.phase = GuardPhase.COUNTING

        triggers: List[Trigger] = []

        if category is SignalCategory.NUKE and event.actor_id is not None:
            burst = self._track_burst(cat_state, event, policy, now)
            if burst is not None:
                triggers.append(burst)

        count, actors = state.windows.count(key, window_seconds, now)
        if count < 0:
            raise GuardStateError(f"Negative window count for {key}")
        measured = len(actors) if unique_actors else count

        if measured < threshold:
            return triggers

        mitigable = True
        if category is SignalCategory.RAID:
            actor_ids = tuple(sorted(actors))
        else:
            actor_ids = (event.actor_id,) if event.actor_id is not None else ()
            if policy.whitelist and not unique_actors:
                mitigable = self._mitigable(state, event, policy, key, threshold, window_seconds, now)

        cat_state.phase = GuardPhase.ALERTING
        # An alert spent on whitelisted activity doesn't shield a later mitigable breach
        escalating = mitigable and not cat_state.last_alert_mitigable
        if self._cooling_down(cat_state, policy, now) and not escalating:
            cat_state.phase = GuardPhase.COUNTING
            logger.debug("Alert Suppressed", [
                ("Guild ID", str(event.community_id)),
                ("Category", category.value),
                ("Count", f"{measured}/{threshold}"),
                ("Reason", "Cooldown"),
            ])
            return triggers

        # Monotonic: an out-of-order clock never moves the anchor backwards
        if cat_state.last_alert_at is None or now > cat_state.last_alert_at:
            cat_state.last_alert_at = now
        cat_state.last_alert_mitigable = mitigable

        triggers.append(Trigger(
            community_id=event.community_id,
            category=category,
            kind=TriggerKind.AGGREGATE,
            signal_type=event.signal_type,
            count=measured,
            window_seconds=window_seconds,
            actor_ids=actor_ids,
            timestamp=now,
            mitigable=mitigable,
        ))
        return triggers

    def mark_mitigated(self, state: CommunityGuardState, category: SignalCategory) -> None:
        state.category(category).phase = GuardPhase.MITIGATED

    def settle(self, state: CommunityGuardState, category: SignalCategory, mitigated: bool) -> None:
        """Leave ALERTING once the alert's mitigation outcome is known."""
        if mitigated:
            self.mark_mitigated(state, category)
            return
        cat_state = state.category(category)
        if cat_state.phase is GuardPhase.ALERTING:
            cat_state.phase = GuardPhase.COUNTING

    def reset(self, state: CommunityGuardState, category: SignalCategory) -> None:
        """Explicit reset: forget the category's cooldown, bursts and phase."""
        state.categories[category] = CategoryState()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _cooling_down(cat_state: CategoryState, policy: Policy, now: datetime) -> bool:
        if cat_state.last_alert_at is None:
            return False
        return (now - cat_state.last_alert_at).total_seconds() < policy.cooldown_seconds

    @staticmethod
    def _mitigable(
        state: CommunityGuardState,
        event: SignalEvent,
        policy: Policy,
        key: str,
        threshold: int,
        window_seconds: int,
        now: datetime,
    ) -> bool:
        """Whether non-whitelisted signals alone reach the threshold, crossing event included."""
        if policy.is_whitelisted(event.actor_id):
            return False
        unvetted = state.windows.count_where(
            key, window_seconds, now,
            lambda e: not policy.is_whitelisted(e.actor_id),
        )
        return unvetted >= threshold

    def _expire_phase(self, cat_state: CategoryState, policy: Policy, now: datetime) -> None:
        """Return to idle once the cooldown is over and nothing is being counted."""
        if cat_state.phase is GuardPhase.MITIGATED and not self._cooling_down(cat_state, policy, now):
            cat_state.phase = GuardPhase.IDLE

    def _track_burst(
        self,
        cat_state: CategoryState,
        event: SignalEvent,
        policy: Policy,
        now: datetime,
    ) -> Optional[Trigger]:
        cutoff = now - timedelta(seconds=policy.burst_window_seconds)

        # Drop actors whose whole history has aged out
        for actor_id in [a for a, h in cat_state.actor_actions.items() if h and h[-1] <= cutoff]:
            del cat_state.actor_actions[actor_id]

        history = cat_state.actor_actions.setdefault(event.actor_id, deque())
        history.append(event.timestamp)
        while history and history[0] <= cutoff:
            history.popleft()

        if len(history) < policy.burst_limit:
            return None

        count = len(history)
        history.clear()

        logger.tree("Nuke Burst Detected", [
            ("Guild ID", str(event.community_id)),
            ("Actor ID", str(event.actor_id)),
            ("Actions", f"{count} in {policy.burst_window_seconds}s"),
            ("Last Signal", event.signal_type.value),
        ], emoji="💥")

        return Trigger(
            community_id=event.community_id,
            category=SignalCategory.NUKE,
            kind=TriggerKind.BURST,
            signal_type=event.signal_type,
            count=count,
            window_seconds=policy.burst_window_seconds,
            actor_ids=(event.actor_id,),
            timestamp=now,
        )


__all__ = ["CategoryState", "CommunityGuardState", "ThresholdEvaluator"]

"""
Bastion - Guard Models
======================

Data types shared by every stage of the guard pipeline.

DESIGN:
    Signals and records are frozen dataclasses: a SignalEvent is created
    once by the normalizer and never mutated (attribution produces a copy
    with the actor filled in). Policies are read-only snapshots fetched per
    evaluation.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .constants import BURST_LIMIT, BURST_WINDOW


# =============================================================================
# Enums
# =============================================================================

class SignalCategory(str, Enum):
    """Detection category a signal counts towards."""

    RAID = "raid"   # Volume based, many actors
    NUKE = "nuke"   # Destructive, single actor


class SignalType(str, Enum):
    """Normalized platform event kinds."""

    JOIN = "join"
    MESSAGE = "message"
    CHANNEL_DELETE = "channelDelete"
    ROLE_DELETE = "roleDelete"
    EMOJI_DELETE = "emojiDelete"
    WEBHOOK_CREATE = "webhookCreate"
    BAN_ADD = "banAdd"

    @property
    def category(self) -> SignalCategory:
        if self in (SignalType.JOIN, SignalType.MESSAGE):
            return SignalCategory.RAID
        return SignalCategory.NUKE


class MitigationAction(str, Enum):
    LOCKED = "locked"
    BANNED = "banned"
    UNLOCKED = "unlocked"
    NONE = "none"


class TriggerKind(str, Enum):
    AGGREGATE = "aggregate"  # Community-wide count crossed the threshold
    BURST = "burst"          # One actor crossed the burst limit
    MANUAL = "manual"        # Explicit lock / unlock request


class GuardPhase(str, Enum):
    """Per community, per category detection phase."""

    IDLE = "idle"
    COUNTING = "counting"
    ALERTING = "alerting"
    MITIGATED = "mitigated"


# =============================================================================
# Errors
# =============================================================================

class GuardStateError(Exception):
    """Internal detection state is inconsistent; the community state is reset."""

    pass


# =============================================================================
# Signals
# =============================================================================

@dataclass(frozen=True)
class SignalEvent:
    """
    One normalized platform event.

    Attributes:
        community_id: Guild the event happened in.
        signal_type: What happened.
        actor_id: Who did it, or None until attribution resolves it.
        timestamp: When it happened (timezone aware).
        target_id: The affected object (deleted channel, banned user).
        source_id: Platform id of the event itself, used to reject duplicate deliveries.
    """

    community_id: int
    signal_type: SignalType
    actor_id: Optional[int]
    timestamp: datetime
    target_id: Optional[int] = None
    source_id: Optional[int] = None

    @property
    def category(self) -> SignalCategory:
        return self.signal_type.category

    def with_actor(self, actor_id: Optional[int]) -> "SignalEvent":
        return replace(self, actor_id=actor_id)


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class SignalLimit:
    """Own counter and threshold for one signal type inside a category."""

    threshold: int
    window_seconds: int
    unique_actors: bool = False  # Count distinct actors instead of events


@dataclass(frozen=True)
class Policy:
    """
    Detection and mitigation settings for one community and category.

    Signal types of a category share one counter unless signal_limits gives
    them their own. The cooldown is always shared by the whole category.
    """

    enabled: bool
    threshold: int
    window_seconds: int
    cooldown_seconds: int
    auto_lock: bool = False
    auto_ban: bool = False
    whitelist: FrozenSet[int] = frozenset()
    burst_limit: int = BURST_LIMIT
    burst_window_seconds: int = BURST_WINDOW
    signal_limits: Dict[SignalType, SignalLimit] = field(default_factory=dict)

    def limit_for(self, signal_type: SignalType) -> Tuple[str, int, int, bool]:
        """
        Get the counter a signal type feeds.

        Returns:
            Tuple of (counter key, threshold, window seconds, count unique actors).
        """
        limit = self.signal_limits.get(signal_type)
        if limit is not None:
            return signal_type.value, limit.threshold, limit.window_seconds, limit.unique_actors
        return signal_type.category.value, self.threshold, self.window_seconds, False

    def is_whitelisted(self, actor_id: Optional[int]) -> bool:
        return actor_id is not None and actor_id in self.whitelist

    def with_whitelist(self, actor_ids: Iterable[int]) -> "Policy":
        """Return a copy whose whitelist also contains actor_ids."""
        return replace(self, whitelist=frozenset(self.whitelist) | frozenset(actor_ids))


# =============================================================================
# Triggers & Records
# =============================================================================

@dataclass(frozen=True)
class Trigger:
    """
    An alert decision produced by the evaluator.

    mitigable is False when the threshold was only reached with the help of
    whitelisted actors' signals: the alert still goes out, nothing is acted on.
    """

    community_id: int
    category: SignalCategory
    kind: TriggerKind
    signal_type: Optional[SignalType]
    count: int
    window_seconds: int
    actor_ids: Tuple[int, ...]
    timestamp: datetime
    mitigable: bool = True


@dataclass(frozen=True)
class MitigationRecord:
    """
    Outcome of one mitigation decision, handed to the alert sink.

    An empty actor_ids on a nuke record means attribution failed (unknown actor).
    """

    community_id: int
    category: SignalCategory
    actor_ids: Tuple[int, ...]
    trigger_count: int
    window_seconds: int
    action: MitigationAction
    timestamp: datetime
    signal_type: Optional[SignalType] = None
    trigger: TriggerKind = TriggerKind.AGGREGATE
    failed: bool = False
    error: Optional[str] = None
    detail: Optional[str] = None

    @property
    def actor_label(self) -> str:
        if not self.actor_ids:
            return "unknown"
        return ", ".join(str(a) for a in self.actor_ids)

    @classmethod
    def from_trigger(
        cls,
        trigger: Trigger,
        action: MitigationAction,
        actor_ids: Optional[Tuple[int, ...]] = None,
        failed: bool = False,
        error: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> "MitigationRecord":
        return cls(
            community_id=trigger.community_id,
            category=trigger.category,
            actor_ids=trigger.actor_ids if actor_ids is None else actor_ids,
            trigger_count=trigger.count,
            window_seconds=trigger.window_seconds,
            action=action,
            timestamp=trigger.timestamp,
            signal_type=trigger.signal_type,
            trigger=trigger.kind,
            failed=failed,
            error=error,
            detail=detail,
        )


@dataclass
class LockdownResult:
    """Result of a lock/unlock operation across a community's channels."""

    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.failed_count > 0 and self.success_count == 0


__all__ = [
    "SignalCategory",
    "SignalType",
    "MitigationAction",
    "TriggerKind",
    "GuardPhase",
    "GuardStateError",
    "SignalEvent",
    "SignalLimit",
    "Policy",
    "Trigger",
    "MitigationRecord",
    "LockdownResult",
]

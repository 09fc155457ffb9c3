"""
Bastion - Guard Collaborator Interfaces
=======================================

Boundaries between the guard engine and the outside world.

DESIGN:
    The engine only talks to these protocols. The Discord and SQLite
    implementations live next to them (audit.py, platform.py, alerts.py,
    policy.py); tests substitute in-memory fakes.
"""

from datetime import datetime
from typing import Optional, Protocol, Tuple

from .models import LockdownResult, MitigationRecord, Policy, SignalCategory, SignalType


class PolicyProvider(Protocol):
    async def get_policy(self, community_id: int, category: SignalCategory) -> Optional[Policy]:
        """Return the community's policy, or None when it has none configured."""
        ...

    def fallback(self, community_id: int, category: SignalCategory) -> Policy:
        """The default used whenever a stored policy can't be had. Never does I/O."""
        ...


class AuditFacility(Protocol):
    async def find_recent_actor(
        self,
        community_id: int,
        signal_type: SignalType,
        since: datetime,
    ) -> Tuple[Optional[int], bool]:
        """Return (actor_id, found) for the newest matching audit entry since `since`."""
        ...


class PlatformActions(Protocol):
    """Channel and member actions. Every call is safe in its target state."""

    async def lock_channels(self, community_id: int, reason: str) -> LockdownResult:
        ...

    async def unlock_channels(self, community_id: int, reason: str) -> LockdownResult:
        ...

    async def ban_actor(self, community_id: int, actor_id: int, reason: str) -> None:
        ...


class AlertSink(Protocol):
    async def publish(self, record: MitigationRecord) -> None:
        ...


__all__ = [
    "PolicyProvider",
    "AuditFacility",
    "PlatformActions",
    "AlertSink",
]

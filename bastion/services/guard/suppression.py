"""
Bastion - Guard Feedback Suppression
====================================

Short-lived memory of the engine's own actions.

DESIGN:
    The actuator marks (community, actor, action) before it calls the
    platform. When the platform echoes the action back as an event (a ban
    we issued arrives as on_member_ban), the normalizer finds the mark and
    drops the event instead of ingesting it.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from bastion.utils.cache import TTLCache

from .constants import SUPPRESSION_MAX_SIZE, SUPPRESSION_TTL


SuppressionKey = Tuple[int, int, str]


class SuppressionSet:
    """TTL set keyed by (community_id, actor_id, action)."""

    def __init__(
        self,
        ttl_seconds: int = SUPPRESSION_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._cache: TTLCache[SuppressionKey, bool] = TTLCache(
            ttl=timedelta(seconds=ttl_seconds),
            max_size=SUPPRESSION_MAX_SIZE,
            clock=clock,
        )

    def mark(self, community_id: int, actor_id: int, action: str) -> None:
        self._cache.set((community_id, actor_id, action), True)

    def is_suppressed(self, community_id: int, actor_id: int, action: str) -> bool:
        return (community_id, actor_id, action) in self._cache

    def __len__(self) -> int:
        self._cache.cleanup_expired()
        return len(self._cache)


__all__ = ["SuppressionSet"]

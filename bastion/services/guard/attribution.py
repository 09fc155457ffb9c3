"""
Bastion - Guard Attribution Resolver
====================================

Finds who performed a destructive action via the audit log.

DESIGN:
    The audit log is eventually consistent: the entry for a deletion may
    not exist yet when the gateway event arrives. A lookup that finds
    nothing is retried once after a short delay. Timeouts and errors are
    not retried; they resolve to None (unknown actor) so the community's
    queue never stalls behind the audit log.

    Concurrent lookups for the same (community, signal type) share one
    in-flight task, and the outcome is reused for a short interval, so a
    burst of deletions costs one audit request instead of one each. An
    unknown outcome is reused too: during an audit-log outage a burst pays
    the timeout once, not once per event.

    Raid signals are never attributed.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from bastion.core.logger import logger
from bastion.utils.cache import TTLCache

from .constants import (
    ATTRIBUTION_CACHE_SECONDS,
    ATTRIBUTION_MAX_ATTEMPTS,
    ATTRIBUTION_RETRY_DELAY,
)
from .interfaces import AuditFacility
from .models import SignalCategory, SignalType


LookupKey = Tuple[int, SignalType]

# Cached in place of an actor id when a lookup came back empty
UNRESOLVED = -1


class AttributionResolver:
    """Coalescing audit-log lookups with bounded retry and timeout."""

    def __init__(
        self,
        facility: AuditFacility,
        timeout: float,
        retry_delay: float = ATTRIBUTION_RETRY_DELAY,
        max_attempts: int = ATTRIBUTION_MAX_ATTEMPTS,
        cache_seconds: float = ATTRIBUTION_CACHE_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.facility = facility
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.max_attempts = max(1, max_attempts)

        self._inflight: Dict[LookupKey, asyncio.Task] = {}
        self._recent: TTLCache[LookupKey, int] = TTLCache(
            ttl=timedelta(seconds=cache_seconds),
            max_size=500,
            clock=clock,
        )

        # Counters for health reporting
        self.lookups = 0
        self.unknown = 0

    async def resolve(
        self,
        community_id: int,
        signal_type: SignalType,
        since: datetime,
    ) -> Optional[int]:
        """
        Resolve the actor behind a signal.

        Returns:
            The actor id, or None when it could not be determined.
        """
        if signal_type.category is SignalCategory.RAID:
            return None

        key = (community_id, signal_type)

        cached = self._recent.get(key)
        if cached is not None:
            return None if cached == UNRESOLVED else cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._lookup(community_id, signal_type, since),
                name=f"Attribution {community_id}:{signal_type.value}",
            )
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))

        # Shielded so one cancelled waiter doesn't cancel the shared lookup
        actor_id = await asyncio.shield(task)
        self._recent.set(key, UNRESOLVED if actor_id is None else actor_id)
        return actor_id

    async def _lookup(
        self,
        community_id: int,
        signal_type: SignalType,
        since: datetime,
    ) -> Optional[int]:
        self.lookups += 1

        for attempt in range(1, self.max_attempts + 1):
            try:
                actor_id, found = await asyncio.wait_for(
                    self.facility.find_recent_actor(community_id, signal_type, since),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Attribution Timed Out", [
                    ("Guild ID", str(community_id)),
                    ("Signal", signal_type.value),
                    ("Attempt", f"{attempt}/{self.max_attempts}"),
                    ("Timeout", f"{self.timeout}s"),
                ])
                break
            except Exception as e:
                logger.warning("Attribution Failed", [
                    ("Guild ID", str(community_id)),
                    ("Signal", signal_type.value),
                    ("Error Type", type(e).__name__),
                    ("Error", str(e)[:100]),
                ])
                break

            if found and actor_id is not None:
                logger.debug("Actor Attributed", [
                    ("Guild ID", str(community_id)),
                    ("Signal", signal_type.value),
                    ("Actor ID", str(actor_id)),
                    ("Attempt", str(attempt)),
                ])
                return actor_id

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        self.unknown += 1
        logger.info("Actor Unknown", [
            ("Guild ID", str(community_id)),
            ("Signal", signal_type.value),
        ])
        return None


__all__ = ["AttributionResolver"]

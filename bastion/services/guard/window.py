"""
Bastion - Guard Window Store
============================

Per-community sliding windows of recent signals.

DESIGN:
    Pure data, no I/O and no timers. Trimming is lazy: every record() and
    count() drops events whose timestamp is at or before `now - window`, so
    an idle community costs nothing until its next event.

    Each window keeps a set of (signal type, source id) pairs alongside the
    deque so a duplicate delivery of the same platform event is never
    counted twice. The two must always agree; if they drift apart the store
    raises GuardStateError and the engine resets the community.
"""

from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, Optional, Set, Tuple

from .models import GuardStateError, SignalEvent, SignalType


DedupeKey = Tuple[SignalType, int]


class SlidingWindow:
    """Insertion-ordered events for one counter."""

    def __init__(self) -> None:
        self._events: Deque[SignalEvent] = deque()
        self._seen: Set[DedupeKey] = set()

    def __len__(self) -> int:
        return len(self._events)

    @staticmethod
    def _dedupe_key(event: SignalEvent) -> Optional[DedupeKey]:
        if event.source_id is None:
            return None
        return (event.signal_type, event.source_id)

    def trim(self, cutoff: datetime) -> int:
        """Drop events at or before cutoff. Returns how many were dropped."""
        dropped = 0
        while self._events and self._events[0].timestamp <= cutoff:
            event = self._events.popleft()
            key = self._dedupe_key(event)
            if key is not None:
                if key not in self._seen:
                    raise GuardStateError(f"Window index missing {key}")
                self._seen.discard(key)
            dropped += 1
        return dropped

    def add(self, event: SignalEvent, cutoff: datetime) -> bool:
        """
        Append an event after trimming.

        Returns:
            False if the event is already stale or was delivered before.
        """
        self.trim(cutoff)

        if event.timestamp <= cutoff:
            return False

        key = self._dedupe_key(event)
        if key is not None:
            if key in self._seen:
                return False
            self._seen.add(key)

        # Out-of-order deliveries are rare; keep the deque sorted so trimming stays a prefix pop
        if self._events and event.timestamp < self._events[-1].timestamp:
            items = list(self._events)
            index = len(items)
            while index > 0 and items[index - 1].timestamp > event.timestamp:
                index -= 1
            items.insert(index, event)
            self._events = deque(items)
        else:
            self._events.append(event)
        return True

    def snapshot(self, cutoff: datetime) -> Tuple[int, Set[int]]:
        """Trim, then return (event count, distinct known actors)."""
        self.trim(cutoff)
        if len(self._seen) > len(self._events):
            raise GuardStateError(
                f"Window index has {len(self._seen)} keys for {len(self._events)} events"
            )
        actors = {e.actor_id for e in self._events if e.actor_id is not None}
        return len(self._events), actors

    def count_where(self, cutoff: datetime, predicate: Callable[[SignalEvent], bool]) -> int:
        """Trim, then count the events matching predicate."""
        self.trim(cutoff)
        return sum(1 for e in self._events if predicate(e))


class WindowStore:
    """All counters of one community, keyed by counter name."""

    def __init__(self) -> None:
        self._windows: Dict[str, SlidingWindow] = {}

    @staticmethod
    def _cutoff(window_seconds: int, now: datetime) -> datetime:
        if window_seconds <= 0:
            raise GuardStateError(f"Invalid window size {window_seconds}")
        return now - timedelta(seconds=window_seconds)

    def record(self, key: str, event: SignalEvent, window_seconds: int, now: datetime) -> bool:
        """Append and trim. Returns False for stale or duplicate events."""
        window = self._windows.get(key)
        if window is None:
            window = self._windows[key] = SlidingWindow()
        return window.add(event, self._cutoff(window_seconds, now))

    def count(self, key: str, window_seconds: int, now: datetime) -> Tuple[int, Set[int]]:
        """Return (n, unique_actors) for events inside the window."""
        window = self._windows.get(key)
        if window is None:
            return 0, set()
        return window.snapshot(self._cutoff(window_seconds, now))

    def count_where(
        self,
        key: str,
        window_seconds: int,
        now: datetime,
        predicate: Callable[[SignalEvent], bool],
    ) -> int:
        window = self._windows.get(key)
        if window is None:
            return 0
        return window.count_where(self._cutoff(window_seconds, now), predicate)

    def total(self) -> int:
        """Events currently held across every counter (untrimmed)."""
        return sum(len(w) for w in self._windows.values())

    def is_empty(self) -> bool:
        return self.total() == 0

    def clear(self) -> None:
        self._windows.clear()


__all__ = ["SlidingWindow", "WindowStore"]

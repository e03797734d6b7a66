"""Bounded trace cache with time-to-idle expiry.

Entries are kept in least-recently-accessed order. Every insert or
successful ``get`` stamps the entry and moves it to the back, so the
front of the ordering always holds the entries closest to expiry.
"""
import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple
from tracetail.models import TraceId, TraceItem


class TraceCache:
    """Thread-safe map of trace id -> most recent TraceItem.

    Attributes:
        max_capacity: Maximum number of live entries.
        time_to_idle: Seconds an entry may go without access before it expires.
    """

    def __init__(self, max_capacity: int, time_to_idle: float,
                 clock: Callable[[], float] = time.monotonic):
        if max_capacity < 0:
            raise ValueError("max_capacity must be >= 0")
        if time_to_idle <= 0:
            raise ValueError("time_to_idle must be > 0")
        self.max_capacity = max_capacity
        self.time_to_idle = time_to_idle
        self._clock = clock
        self._lock = threading.Lock()
        # trace id -> (item, last access time)
        self._entries: "OrderedDict[TraceId, Tuple[TraceItem, float]]" = OrderedDict()

    def _expired(self, last_access: float, now: float) -> bool:
        return now - last_access >= self.time_to_idle

    def _evict_expired(self, now: float) -> None:
        while self._entries:
            _, (_, last_access) = next(iter(self._entries.items()))
            if not self._expired(last_access, now):
                break
            self._entries.popitem(last=False)

    def insert(self, trace_id: TraceId, item: TraceItem) -> None:
        """Store ``item`` under ``trace_id``, replacing any previous entry."""
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if self.max_capacity == 0:
                return
            if trace_id in self._entries:
                self._entries.move_to_end(trace_id)
            else:
                while len(self._entries) >= self.max_capacity:
                    self._entries.popitem(last=False)
            self._entries[trace_id] = (item, now)

    def get(self, trace_id: TraceId) -> Optional[TraceItem]:
        """Return the live entry for ``trace_id`` and reset its idle timer."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(trace_id)
            if entry is None:
                return None
            item, last_access = entry
            if self._expired(last_access, now):
                del self._entries[trace_id]
                return None
            self._entries[trace_id] = (item, now)
            self._entries.move_to_end(trace_id)
            return item

    def snapshot(self) -> List[Tuple[TraceId, TraceItem, float]]:
        """Return ``(trace_id, item, idle_seconds)`` for live entries, most recent first.

        Reading a snapshot does not count as an access.
        """
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            return [
                (trace_id, item, now - last_access)
                for trace_id, (item, last_access) in reversed(self._entries.items())
            ]

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._entries)

    def __contains__(self, trace_id: object) -> bool:
        with self._lock:
            entry = self._entries.get(trace_id)  # type: ignore[arg-type]
            return entry is not None and not self._expired(entry[1], self._clock())

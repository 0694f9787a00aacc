# Pipeline Module - Bounded Retention Store
#
# In-memory, newest-first views of recent events and alerts plus the
# running Metrics.  An event, its derived alert and the metric increments
# are written as one unit under a single lock, so a reader never sees an
# event without its counters or the reverse.  Oldest entries are evicted
# silently once a cap is reached.

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Generic, Optional, Set, Tuple, TypeVar

from ..events.models import Alert, Metrics, SecurityEvent
from .correlation import Correlation

DEFAULT_MAX_EVENTS = 100
DEFAULT_MAX_ALERTS = 50

T = TypeVar("T")


class DuplicateRecordError(Exception):
    """Raised when a record id is already present in a store."""


class _BoundedLog(Generic[T]):
    """Newest-first sequence capped at ``maxlen`` with id tracking.

    Not thread-safe on its own; RetentionStore holds the lock.
    """

    def __init__(self, maxlen: int, id_attr: str):
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self.maxlen = maxlen
        self._id_attr = id_attr
        self._items: Deque[T] = deque()
        self._ids: Set[str] = set()
        self.evicted = 0

    def check(self, item: T) -> None:
        record_id = getattr(item, self._id_attr)
        if record_id in self._ids:
            raise DuplicateRecordError(f"duplicate {self._id_attr}: {record_id}")

    def prepend(self, item: T) -> None:
        self._items.appendleft(item)
        self._ids.add(getattr(item, self._id_attr))
        while len(self._items) > self.maxlen:
            oldest = self._items.pop()
            self._ids.discard(getattr(oldest, self._id_attr))
            self.evicted += 1

    def find(self, record_id: str) -> Optional[T]:
        if record_id not in self._ids:
            return None
        for item in self._items:
            if getattr(item, self._id_attr) == record_id:
                return item
        return None

    def head(self, limit: Optional[int] = None) -> Tuple[T, ...]:
        if limit is None or limit >= len(self._items):
            return tuple(self._items)
        return tuple(self._items[i] for i in range(max(0, limit)))

    def __len__(self) -> int:
        return len(self._items)


@dataclass(frozen=True)
class PipelineSnapshot:
    """Point-in-time, read-only view of the pipeline state."""

    events: Tuple[SecurityEvent, ...]
    alerts: Tuple[Alert, ...]
    metrics: Metrics
    taken_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "alerts": [a.to_dict() for a in self.alerts],
            "metrics": self.metrics.to_dict(),
            "taken_at": self.taken_at,
        }


class RetentionStore:
    """Bounded event/alert retention with metrics.

    Args:
        max_events: Event cap (newest kept).
        max_alerts: Alert cap (newest kept).
    """

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        max_alerts: int = DEFAULT_MAX_ALERTS,
    ):
        self._lock = threading.RLock()
        self._events: _BoundedLog[SecurityEvent] = _BoundedLog(max_events, "event_id")
        self._alerts: _BoundedLog[Alert] = _BoundedLog(max_alerts, "alert_id")
        self._metrics = Metrics()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(self, correlation: Correlation) -> None:
        """Insert a correlated event, its alert and metric delta atomically.

        Raises:
            DuplicateRecordError: the event or alert id is already
                retained.  Nothing is written in that case.
        """
        with self._lock:
            self._events.check(correlation.event)
            if correlation.alert is not None:
                self._alerts.check(correlation.alert)

            self._events.prepend(correlation.event)
            if correlation.alert is not None:
                self._alerts.prepend(correlation.alert)
            self._metrics.apply(correlation.delta)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> PipelineSnapshot:
        with self._lock:
            return PipelineSnapshot(
                events=self._events.head(),
                alerts=self._alerts.head(),
                metrics=self._metrics.copy(),
                taken_at=datetime.now(timezone.utc).isoformat(),
            )

    def events(self, limit: Optional[int] = None) -> Tuple[SecurityEvent, ...]:
        with self._lock:
            return self._events.head(limit)

    def alerts(self, limit: Optional[int] = None) -> Tuple[Alert, ...]:
        with self._lock:
            return self._alerts.head(limit)

    def metrics(self) -> Metrics:
        with self._lock:
            return self._metrics.copy()

    def get_event(self, event_id: str) -> Optional[SecurityEvent]:
        with self._lock:
            return self._events.find(event_id)

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            return self._alerts.find(alert_id)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "events_retained": len(self._events),
                "events_cap": self._events.maxlen,
                "events_evicted": self._events.evicted,
                "alerts_retained": len(self._alerts),
                "alerts_cap": self._alerts.maxlen,
                "alerts_evicted": self._alerts.evicted,
            }

# Sources Module - Abstract Event Source
#
# Defines the EventSource contract implemented by the synthetic generator
# and by every external feed adapter.  The scheduler only talks to this
# interface.

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..events.models import SecurityEvent


class EventSource(ABC):
    """Abstract base class for producers of SecurityEvent batches.

    ``next_batch()`` may return an empty list but must not raise for
    expected runtime conditions (feed down, bad payload).  Each source
    carries a ``poll_interval`` hint the scheduler uses to pick its
    cadence.
    """

    def __init__(self, name: str, poll_interval: float):
        self.name = name
        self.poll_interval = poll_interval
        self._stats_lock = threading.Lock()
        self._last_fetch: Optional[str] = None
        self._fetch_count: int = 0
        self._error_count: int = 0

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def next_batch(self) -> List[SecurityEvent]:
        """Produce the next batch of events (possibly empty)."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def record_fetch(self, count: int) -> None:
        """Record a successful batch for stats tracking."""
        with self._stats_lock:
            self._last_fetch = datetime.now(timezone.utc).isoformat()
            self._fetch_count += count

    def record_error(self) -> None:
        with self._stats_lock:
            self._error_count += 1

    def get_stats(self) -> Dict[str, object]:
        """Return source statistics."""
        with self._stats_lock:
            return {
                "name": self.name,
                "poll_interval": self.poll_interval,
                "last_fetch": self._last_fetch,
                "total_fetched": self._fetch_count,
                "total_errors": self._error_count,
            }

"""
Audit log throttling for threatwatch.

Feed failures recur on every live polling cycle while a feed is down.
The throttler keeps those from flooding the audit log:
1. Per-source rate limiting of identical messages
2. Exponential backoff for messages that keep repeating
3. A note on the next allowed entry counting what was suppressed
"""

import hashlib
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

_VARIABLE_PARTS = [re.compile(p) for p in (r"\d+", r"[a-f0-9]{8,}")]


@dataclass
class ThrottleState:
    """Throttling state for one source/message combination."""
    last_logged: float
    suppressed_count: int
    backoff_multiplier: float = 1.0


class LogThrottler:
    """
    Rate limit repeated audit messages per source.

    Critical entries are never throttled.
    """

    def __init__(
        self,
        min_interval_seconds: float = 300.0,
        max_backoff_multiplier: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval_seconds
        self.max_backoff = max_backoff_multiplier
        self._clock = clock
        self._lock = threading.Lock()
        self.throttle_states: Dict[str, ThrottleState] = {}
        self.total_suppressed = 0

    @staticmethod
    def _message_hash(message: str) -> str:
        """Hash the message with numbers and hex ids normalised away."""
        normalized = message.lower()
        for pattern in _VARIABLE_PARTS:
            normalized = pattern.sub("X", normalized)
        return hashlib.md5(normalized.encode()).hexdigest()[:8]

    def should_log(
        self,
        source: str,
        message: str,
        severity: str = "info",
    ) -> Tuple[bool, Optional[str]]:
        """
        Decide whether a message is written.

        Returns:
            (should_log, note) where note summarises messages suppressed
            since the last time this message was written.
        """
        if severity.lower() == "critical":
            return True, None

        now = self._clock()
        key = f"{source}:{self._message_hash(message)}"

        with self._lock:
            state = self.throttle_states.get(key)
            if state is None:
                self.throttle_states[key] = ThrottleState(
                    last_logged=now, suppressed_count=0
                )
                return True, None

            required = self.min_interval * state.backoff_multiplier
            if now - state.last_logged < required:
                state.suppressed_count += 1
                self.total_suppressed += 1
                if state.suppressed_count % 10 == 0:
                    state.backoff_multiplier = min(
                        state.backoff_multiplier * 1.5, self.max_backoff
                    )
                return False, None

            note = None
            if state.suppressed_count:
                note = (
                    f"[Previously suppressed {state.suppressed_count} "
                    f"similar messages from {source}]"
                )
            state.last_logged = now
            state.suppressed_count = 0
            if state.backoff_multiplier > 1.0:
                state.backoff_multiplier = max(1.0, state.backoff_multiplier * 0.9)
            return True, note

    def reset_source(self, source: str) -> None:
        """Forget throttling state for one source (e.g. a recovered feed)."""
        with self._lock:
            for key in [k for k in self.throttle_states if k.startswith(f"{source}:")]:
                del self.throttle_states[key]

# Sources Module - Synthetic Event Generator
#
# Procedural source used when no live feeds are polled.  Every call
# draws one event: a uniformly sampled archetype from a fixed catalog,
# a source IP and user from fixed pools, and a randomized internal
# destination address.

import random
from typing import List, NamedTuple, Optional

from ..events.models import (
    EventOrigin,
    EventStatus,
    EventType,
    SecurityEvent,
    Severity,
)
from .base import EventSource

DEFAULT_INTERVAL_SEC = 3.0


class EventArchetype(NamedTuple):
    event_type: EventType
    severity: Severity
    description: str


EVENT_CATALOG: List[EventArchetype] = [
    EventArchetype(EventType.INTRUSION_ATTEMPT, Severity.CRITICAL,
                   "Multiple failed SSH login attempts detected"),
    EventArchetype(EventType.MALWARE_DETECTED, Severity.CRITICAL,
                   "Malicious file execution blocked"),
    EventArchetype(EventType.DATA_EXFILTRATION, Severity.HIGH,
                   "Unusual outbound data transfer"),
    EventArchetype(EventType.PORT_SCAN, Severity.MEDIUM,
                   "Network scanning activity detected"),
    EventArchetype(EventType.PRIVILEGE_ESCALATION, Severity.CRITICAL,
                   "Unauthorized privilege escalation attempt"),
    EventArchetype(EventType.SUSPICIOUS_PROCESS, Severity.HIGH,
                   "Unknown process spawned from system directory"),
    EventArchetype(EventType.PHISHING_ATTEMPT, Severity.MEDIUM,
                   "Suspicious email link clicked"),
    EventArchetype(EventType.ANOMALOUS_LOGIN, Severity.HIGH,
                   "Login from unusual geolocation"),
    EventArchetype(EventType.FILE_INTEGRITY, Severity.MEDIUM,
                   "Critical system file modification detected"),
    EventArchetype(EventType.DNS_TUNNELING, Severity.HIGH,
                   "Potential DNS tunneling detected"),
]

SOURCE_IPS = ["192.168.1.100", "10.0.0.50", "172.16.0.25", "203.0.113.42"]
USERS = ["admin", "root", "user1", "system", "service_account"]
DEST_PREFIX = "10.0"


class SyntheticSource(EventSource):
    """Generates one random SecurityEvent per call.

    Args:
        rng: Random generator; pass a seeded ``random.Random`` for
             reproducible sequences.
        interval: Cadence hint in seconds.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        interval: float = DEFAULT_INTERVAL_SEC,
    ):
        super().__init__("synthetic", interval)
        self._rng = rng or random.Random()

    def next_batch(self) -> List[SecurityEvent]:
        batch = [self.generate()]
        self.record_fetch(len(batch))
        return batch

    def generate(self) -> SecurityEvent:
        archetype = self._rng.choice(EVENT_CATALOG)
        dest_ip = (
            f"{DEST_PREFIX}.{self._rng.randrange(255)}.{self._rng.randrange(255)}"
        )
        return SecurityEvent(
            event_type=archetype.event_type,
            severity=archetype.severity,
            description=archetype.description,
            source_ip=self._rng.choice(SOURCE_IPS),
            dest_ip=dest_ip,
            user=self._rng.choice(USERS),
            status=EventStatus.DETECTED,
            automated=False,
            origin=EventOrigin.SYNTHETIC,
        )

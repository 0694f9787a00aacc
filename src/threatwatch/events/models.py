# Events Module - Security Event Data Models
#
# Defines the records that flow through the correlation pipeline:
#   SecurityEvent - one observation from a synthetic or feed source
#   Alert         - derived from an event by the correlation engine
#   Metrics       - running counters updated with each insertion
#
# Events and alerts are frozen once built.  The correlation engine
# produces a replaced copy when it changes an event's status.

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4


class Severity(str, Enum):
    """Ordered event severity (low < medium < high < critical)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
]


class EventType(str, Enum):
    """Event archetypes produced by the synthetic generator and feeds."""

    INTRUSION_ATTEMPT = "INTRUSION_ATTEMPT"
    MALWARE_DETECTED = "MALWARE_DETECTED"
    DATA_EXFILTRATION = "DATA_EXFILTRATION"
    PORT_SCAN = "PORT_SCAN"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
    SUSPICIOUS_PROCESS = "SUSPICIOUS_PROCESS"
    PHISHING_ATTEMPT = "PHISHING_ATTEMPT"
    ANOMALOUS_LOGIN = "ANOMALOUS_LOGIN"
    FILE_INTEGRITY = "FILE_INTEGRITY"
    DNS_TUNNELING = "DNS_TUNNELING"
    MALWARE_URL_DETECTED = "MALWARE_URL_DETECTED"


class EventStatus(str, Enum):
    DETECTED = "detected"
    BLOCKED = "blocked"
    ARCHIVED = "archived"
    RESOLVED = "resolved"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"


class EventOrigin(str, Enum):
    """Which kind of source produced an event.

    Synthetic events carry no metadata; feed events carry the feed name
    and feed-specific context in ``SecurityEvent.metadata``.
    """

    SYNTHETIC = "synthetic"
    FEED = "feed"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_record_id(prefix: str) -> str:
    """Time-based id with a random suffix, e.g. ``EVT-1718000000000-3fa9c2b1d``."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid4().hex[:9]}"


@dataclass(frozen=True)
class SecurityEvent:
    """A single security observation.

    ``metadata`` is the source-specific payload (feed name, raw
    indicator, attack counters).  It is empty for synthetic events.
    """

    event_type: EventType
    severity: Severity
    description: str
    source_ip: str
    dest_ip: str
    user: str
    status: EventStatus = EventStatus.DETECTED
    automated: bool = False
    origin: EventOrigin = EventOrigin.SYNTHETIC
    metadata: Dict[str, str] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: new_record_id("EVT"))
    timestamp: str = field(default_factory=_utc_now)

    @property
    def feed(self) -> Optional[str]:
        return self.metadata.get("feed")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["event_type"] = self.event_type.value
        d["severity"] = self.severity.value
        d["status"] = self.status.value
        d["origin"] = self.origin.value
        return d


@dataclass(frozen=True)
class Alert:
    """Alert raised by the correlation engine for one event."""

    event_id: str
    severity: Severity
    title: str
    description: str
    status: AlertStatus
    automated: bool = False
    actions: Tuple[str, ...] = ()
    alert_id: str = field(default_factory=lambda: new_record_id("ALT"))
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["severity"] = self.severity.value
        d["status"] = self.status.value
        d["actions"] = list(self.actions)
        return d


@dataclass
class Metrics:
    """Monotonic rollup counters."""

    total_events: int = 0
    critical_alerts: int = 0
    blocked_threats: int = 0
    active_incidents: int = 0

    def apply(self, delta: "Metrics") -> None:
        if min(delta.total_events, delta.critical_alerts,
               delta.blocked_threats, delta.active_incidents) < 0:
            raise ValueError("Metrics are never decremented")
        self.total_events += delta.total_events
        self.critical_alerts += delta.critical_alerts
        self.blocked_threats += delta.blocked_threats
        self.active_incidents += delta.active_incidents

    def copy(self) -> "Metrics":
        return Metrics(**asdict(self))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

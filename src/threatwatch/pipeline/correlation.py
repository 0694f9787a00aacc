# Pipeline Module - Correlation Engine
#
# Classifies each incoming SecurityEvent against the ThreatIndex and
# decides the response.  Decision table, first match wins:
#
#   1. Source indicator is malicious   -> block, active automated alert
#   2. Critical severity or the event
#      arrived pre-flagged by a feed   -> pending alert for review
#   3. Anything else                   -> stored as-is, no alert
#
# A malicious index match takes precedence over the feed flag, so a
# feed event whose IP is also in the index is blocked, not queued.
#
# classify() is total and has no side effects: it returns the event,
# the optional alert and the metric increments as one Correlation that
# the retention store applies atomically.

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from ..events.models import (
    Alert,
    AlertStatus,
    EventOrigin,
    EventStatus,
    Metrics,
    SecurityEvent,
    Severity,
)
from ..intel.models import ThreatIndicator
from ..intel.threat_index import ThreatIndex

AUTO_RESPONSE_ACTIONS = (
    "IP Blocked",
    "Firewall Rule Added",
    "Incident Ticket Created",
)

FEED_MONITORING_ACTIONS = (
    "Indicator Added to Watchlist",
    "Traffic Monitoring Enabled",
)


class Verdict(str, Enum):
    """Which branch of the decision table an event took."""

    AUTO_BLOCKED = "auto_blocked"
    FEED_REVIEW = "feed_review"
    MANUAL_REVIEW = "manual_review"
    NO_ACTION = "no_action"


@dataclass(frozen=True)
class Correlation:
    """Outcome of classifying one event."""

    event: SecurityEvent
    verdict: Verdict
    indicator: ThreatIndicator
    alert: Optional[Alert] = None
    delta: Metrics = field(default_factory=lambda: Metrics(total_events=1))


class CorrelationEngine:
    """Applies the decision table to events.

    Args:
        index: Threat index consulted for each event's source address.
    """

    def __init__(self, index: ThreatIndex):
        self._index = index

    @property
    def index(self) -> ThreatIndex:
        return self._index

    def classify(self, event: SecurityEvent) -> Correlation:
        """Return the (possibly updated) event and its derived alert."""
        intel = self._index.lookup(event.source_ip)

        if intel.is_malicious:
            return self._auto_block(event, intel)

        if event.severity == Severity.CRITICAL or event.automated:
            return self._queue_for_review(event, intel)

        return Correlation(event=event, verdict=Verdict.NO_ACTION, indicator=intel)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _auto_block(self, event: SecurityEvent, intel: ThreatIndicator) -> Correlation:
        blocked = replace(event, status=EventStatus.BLOCKED, automated=True)
        alert = Alert(
            event_id=event.event_id,
            severity=Severity.CRITICAL,
            title=f"Automated Response: {event.event_type.value}",
            description=f"IP {event.source_ip} blocked - Known {intel.category}",
            status=AlertStatus.ACTIVE,
            automated=True,
            actions=AUTO_RESPONSE_ACTIONS,
        )
        return Correlation(
            event=blocked,
            verdict=Verdict.AUTO_BLOCKED,
            indicator=intel,
            alert=alert,
            delta=Metrics(total_events=1, blocked_threats=1, active_incidents=1),
        )

    def _queue_for_review(self, event: SecurityEvent, intel: ThreatIndicator) -> Correlation:
        from_feed = event.automated or event.origin == EventOrigin.FEED
        if from_feed:
            feed = event.feed or "threat feed"
            alert = Alert(
                event_id=event.event_id,
                severity=event.severity,
                title=f"Threat Feed Match: {event.event_type.value}",
                description=f"{event.description} (source: {feed}, indicator: {event.source_ip})",
                status=AlertStatus.PENDING,
                automated=True,
                actions=FEED_MONITORING_ACTIONS,
            )
            verdict = Verdict.FEED_REVIEW
        else:
            alert = Alert(
                event_id=event.event_id,
                severity=event.severity,
                title=f"Manual Review Required: {event.event_type.value}",
                description=event.description,
                status=AlertStatus.PENDING,
                automated=False,
            )
            verdict = Verdict.MANUAL_REVIEW

        return Correlation(
            event=event,
            verdict=verdict,
            indicator=intel,
            alert=alert,
            delta=Metrics(total_events=1, critical_alerts=1),
        )

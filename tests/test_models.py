"""
Tests for the pipeline data models (events, alerts, metrics, indicators).
"""

import re
from dataclasses import FrozenInstanceError, replace

import pytest

from threatwatch.events.models import (
    Alert,
    AlertStatus,
    EventOrigin,
    EventStatus,
    EventType,
    Metrics,
    SecurityEvent,
    Severity,
    new_record_id,
)
from threatwatch.intel.models import (
    IntelLookup,
    Provenance,
    Reputation,
    ThreatIndicator,
)


def _event(**overrides):
    fields = dict(
        event_type=EventType.PORT_SCAN,
        severity=Severity.MEDIUM,
        description="Network scanning activity detected",
        source_ip="172.16.0.25",
        dest_ip="10.0.4.7",
        user="root",
    )
    fields.update(overrides)
    return SecurityEvent(**fields)


class TestSeverity:
    def test_ordering(self):
        assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
        assert Severity.CRITICAL >= Severity.HIGH
        assert max([Severity.MEDIUM, Severity.CRITICAL, Severity.LOW]) == Severity.CRITICAL

    def test_values(self):
        assert Severity("critical") is Severity.CRITICAL
        assert Severity.HIGH.value == "high"


class TestRecordIds:
    def test_format(self):
        assert re.fullmatch(r"EVT-\d{13}-[0-9a-f]{9}", new_record_id("EVT"))

    def test_unique(self):
        ids = {new_record_id("ALT") for _ in range(500)}
        assert len(ids) == 500


class TestSecurityEvent:
    def test_defaults(self):
        e = _event()
        assert e.status == EventStatus.DETECTED
        assert e.automated is False
        assert e.origin == EventOrigin.SYNTHETIC
        assert e.metadata == {}
        assert e.feed is None
        assert e.event_id.startswith("EVT-")
        assert e.timestamp.endswith("+00:00")

    def test_frozen(self):
        e = _event()
        with pytest.raises(FrozenInstanceError):
            e.status = EventStatus.BLOCKED

    def test_replace_keeps_identity(self):
        e = _event()
        blocked = replace(e, status=EventStatus.BLOCKED, automated=True)
        assert blocked.event_id == e.event_id
        assert blocked.timestamp == e.timestamp
        assert e.status == EventStatus.DETECTED

    def test_feed_property(self):
        e = _event(origin=EventOrigin.FEED, metadata={"feed": "urlhaus"})
        assert e.feed == "urlhaus"

    def test_to_dict(self):
        d = _event(metadata={"feed": "blocklist"}).to_dict()
        assert d["event_type"] == "PORT_SCAN"
        assert d["severity"] == "medium"
        assert d["status"] == "detected"
        assert d["origin"] == "synthetic"
        assert d["metadata"] == {"feed": "blocklist"}


class TestAlert:
    def test_to_dict(self):
        alert = Alert(
            event_id="EVT-1-abc",
            severity=Severity.CRITICAL,
            title="Automated Response: PORT_SCAN",
            description="IP 1.2.3.4 blocked - Known C2 Server",
            status=AlertStatus.ACTIVE,
            automated=True,
            actions=("IP Blocked",),
        )
        d = alert.to_dict()
        assert d["alert_id"].startswith("ALT-")
        assert d["status"] == "active"
        assert d["actions"] == ["IP Blocked"]


class TestMetrics:
    def test_apply(self):
        m = Metrics()
        m.apply(Metrics(total_events=1, blocked_threats=1, active_incidents=1))
        m.apply(Metrics(total_events=1, critical_alerts=1))
        assert m.to_dict() == {
            "total_events": 2,
            "critical_alerts": 1,
            "blocked_threats": 1,
            "active_incidents": 1,
        }

    def test_never_decremented(self):
        m = Metrics(total_events=3)
        with pytest.raises(ValueError):
            m.apply(Metrics(total_events=-1))
        assert m.total_events == 3

    def test_copy_is_independent(self):
        m = Metrics(total_events=1)
        c = m.copy()
        m.apply(Metrics(total_events=1))
        assert c.total_events == 1


class TestThreatIndicator:
    def test_score_range(self):
        with pytest.raises(ValueError):
            ThreatIndicator(Reputation.MALICIOUS, 101, "C2 Server")
        with pytest.raises(ValueError):
            ThreatIndicator(Reputation.CLEAN, -1, "Unknown")

    def test_clean_fallback(self):
        clean = ThreatIndicator.clean()
        assert clean.reputation == Reputation.CLEAN
        assert clean.score == 10
        assert clean.category == "Unknown"
        assert not clean.is_malicious

    def test_from_dict_type_alias(self):
        ind = ThreatIndicator.from_dict(
            {"reputation": "suspicious", "score": 70, "type": "PUP", "family": "Adware"}
        )
        assert ind.category == "PUP"
        assert ind.family == "Adware"
        assert ind.country is None

    def test_from_dict_unknown_reputation(self):
        with pytest.raises(ValueError):
            ThreatIndicator.from_dict({"reputation": "evil", "score": 5})

    def test_to_dict(self):
        ind = ThreatIndicator(Reputation.MALICIOUS, 88, "Malware Distribution", country="RU")
        assert ind.to_dict() == {
            "reputation": "malicious",
            "score": 88,
            "category": "Malware Distribution",
            "country": "RU",
            "family": None,
        }


class TestIntelLookup:
    def test_to_dict(self):
        lookup = IntelLookup(
            indicator="8.8.8.8",
            reputation=Reputation.CLEAN,
            score=10,
            category="Unknown",
            provenance=Provenance.NO_DATA,
            looked_up_at="2026-01-01T00:00:00+00:00",
        )
        d = lookup.to_dict()
        assert d["reputation"] == "clean"
        assert d["provenance"] == "no data"

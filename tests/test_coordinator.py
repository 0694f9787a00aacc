"""
End-to-end tests for the PipelineCoordinator: ingest -> correlate ->
retain, audit trail, mode control and operator lookups.
"""

import json
import random

import pytest

from threatwatch.core.config import PipelineSettings
from threatwatch.events.models import (
    AlertStatus,
    EventOrigin,
    EventStatus,
    EventType,
    Metrics,
    SecurityEvent,
    Severity,
)
from threatwatch.intel.models import Provenance, Reputation
from threatwatch.intel.threat_index import ThreatIndex
from threatwatch.pipeline.coordinator import PipelineCoordinator, build_feeds, fetch_deadline
from threatwatch.pipeline.correlation import Verdict
from threatwatch.pipeline.scheduler import IngestionMode
from threatwatch.sources.base import EventSource
from threatwatch.sources.blocklist import BlocklistFeed
from threatwatch.sources.feed import MAX_RETRY_AFTER_SEC
from threatwatch.sources.synthetic import SyntheticSource
from threatwatch.sources.urlhaus import URLhausFeed

SEED = {
    "203.0.113.42": {"reputation": "malicious", "score": 88, "category": "Malware Distribution"},
}


class ListFeed(EventSource):
    def __init__(self, name, events):
        super().__init__(name, 60.0)
        self.events = events

    def next_batch(self):
        return list(self.events)


def _event(source_ip, severity=Severity.HIGH, **overrides):
    fields = dict(
        event_type=EventType.ANOMALOUS_LOGIN,
        severity=severity,
        description="Login from unusual geolocation",
        source_ip=source_ip,
        dest_ip="10.0.8.8",
        user="admin",
    )
    fields.update(overrides)
    return SecurityEvent(**fields)


def _audit_entries(audit_logger):
    return [
        json.loads(line)
        for line in audit_logger.log_file.read_text().splitlines()
        if line.strip()
    ]


@pytest.fixture
def settings():
    return PipelineSettings(stagger_delay=0, synthetic_interval=3600, live_interval=3600)


@pytest.fixture
def coordinator(settings):
    c = PipelineCoordinator(settings, index=ThreatIndex(SEED), feeds=[])
    yield c
    c.shutdown()


class TestIngest:
    def test_malicious_source_auto_blocked(self, coordinator):
        coordinator.ingest(_event("203.0.113.42", severity=Severity.HIGH))

        snap = coordinator.snapshot()
        [event] = snap.events
        assert event.status == EventStatus.BLOCKED
        assert event.automated is True

        [alert] = snap.alerts
        assert alert.severity == Severity.CRITICAL
        assert alert.automated is True
        assert alert.status == AlertStatus.ACTIVE
        assert alert.event_id == event.event_id

        assert snap.metrics == Metrics(
            total_events=1, critical_alerts=0, blocked_threats=1, active_incidents=1
        )

    def test_critical_unknown_needs_review(self, coordinator):
        result = coordinator.ingest(_event("198.51.100.20", severity=Severity.CRITICAL))
        assert result.verdict == Verdict.MANUAL_REVIEW
        snap = coordinator.snapshot()
        assert snap.alerts[0].status == AlertStatus.PENDING
        assert snap.metrics.critical_alerts == 1
        assert snap.metrics.blocked_threats == 0

    def test_ordinary_event_stored_without_alert(self, coordinator):
        coordinator.ingest(_event("198.51.100.21", severity=Severity.MEDIUM))
        snap = coordinator.snapshot()
        assert len(snap.events) == 1
        assert snap.alerts == ()
        assert snap.metrics == Metrics(total_events=1)

    def test_metrics_match_retained_history(self, settings):
        c = PipelineCoordinator(
            settings,
            synthetic=SyntheticSource(rng=random.Random(11)),
            feeds=[],
        )
        for _ in range(40):
            c.scheduler.tick()
        snap = c.snapshot()
        blocked = sum(1 for e in snap.events if e.status == EventStatus.BLOCKED)
        assert snap.metrics.total_events == 40
        assert snap.metrics.blocked_threats == blocked
        assert snap.metrics.active_incidents == blocked
        assert snap.metrics.critical_alerts == sum(
            1 for a in snap.alerts if a.status == AlertStatus.PENDING
        )

    def test_decisions_audited(self, coordinator, audit_logger):
        coordinator.ingest(_event("203.0.113.42"))
        coordinator.ingest(_event("198.51.100.22", severity=Severity.CRITICAL))
        coordinator.ingest(_event("198.51.100.23", severity=Severity.LOW))

        types = [e["event_type"] for e in _audit_entries(audit_logger)]
        assert types == ["decision.auto_remediation", "decision.manual_review"]
        first = _audit_entries(audit_logger)[0]
        assert first["details"]["indicator"] == "203.0.113.42"
        assert first["details"]["reputation"] == "malicious"


class TestLiveCycle:
    def test_feed_events_flow_through(self, settings, audit_logger):
        feed_event = _event(
            "185.220.101.4",
            severity=Severity.CRITICAL,
            event_type=EventType.INTRUSION_ATTEMPT,
            status=EventStatus.BLOCKED,
            automated=True,
            origin=EventOrigin.FEED,
            metadata={"feed": "blocklist"},
        )
        known_bad = _event(
            "203.0.113.42",
            event_type=EventType.MALWARE_URL_DETECTED,
            automated=True,
            origin=EventOrigin.FEED,
            metadata={"feed": "urlhaus"},
        )
        c = PipelineCoordinator(
            settings,
            index=ThreatIndex(SEED),
            feeds=[ListFeed("urlhaus", [known_bad]), ListFeed("blocklist", [feed_event])],
        )
        report = c.scheduler.run_fetch_cycle()
        assert report.delivered == 2

        snap = c.snapshot()
        assert [e.source_ip for e in snap.events] == ["185.220.101.4", "203.0.113.42"]
        titles = [a.title for a in snap.alerts]
        assert titles == [
            "Threat Feed Match: INTRUSION_ATTEMPT",
            "Automated Response: MALWARE_URL_DETECTED",
        ]
        assert snap.metrics == Metrics(
            total_events=2, critical_alerts=1, blocked_threats=1, active_incidents=1
        )


class TestModeControl:
    def test_start_and_switch(self, coordinator, audit_logger):
        coordinator.start()
        assert coordinator.mode == IngestionMode.SYNTHETIC
        assert coordinator.set_mode("live") is True
        assert coordinator.mode == IngestionMode.LIVE
        assert coordinator.set_mode("live") is False
        coordinator.shutdown()
        assert coordinator.mode == IngestionMode.STOPPED

        types = [e["event_type"] for e in _audit_entries(audit_logger)]
        assert types[0] == "pipeline.start"
        assert types.count("pipeline.mode_changed") == 1
        assert "pipeline.stop" in types

    def test_switch_keeps_retained_data(self, coordinator):
        coordinator.ingest(_event("203.0.113.42"))
        coordinator.start("synthetic")
        coordinator.set_mode("live")
        assert len(coordinator.snapshot().events) >= 1
        assert coordinator.snapshot().metrics.blocked_threats >= 1

    @pytest.mark.parametrize("mode", ["turbo", "stopped"])
    def test_invalid_mode(self, coordinator, mode):
        with pytest.raises(ValueError):
            coordinator.set_mode(mode)

    def test_shutdown_idempotent(self, coordinator, audit_logger):
        coordinator.shutdown()
        coordinator.shutdown()
        assert _audit_entries(audit_logger) == []


class TestOperatorSurface:
    def test_lookup(self, coordinator):
        hit = coordinator.lookup("203.0.113.42")
        assert hit.reputation == Reputation.MALICIOUS
        assert hit.provenance == Provenance.LOCAL_INDEX

        miss = coordinator.lookup("8.8.8.8")
        assert miss.reputation == Reputation.CLEAN
        assert miss.score == 10
        assert miss.provenance == Provenance.NO_DATA

    def test_status(self, coordinator):
        coordinator.ingest(_event("198.51.100.30"))
        status = coordinator.status()
        assert status["mode"] == "stopped"
        assert status["metrics"]["total_events"] == 1
        assert status["retention"]["events_cap"] == 100
        assert status["indicators"] == 1

    def test_default_feeds(self):
        s = PipelineSettings(feed_proxy="http://localhost:5173", urlhaus_limit=4)
        urlhaus, blocklist = build_feeds(s)
        assert isinstance(urlhaus, URLhausFeed)
        assert isinstance(blocklist, BlocklistFeed)
        assert urlhaus.url == "http://localhost:5173/api/urlhaus/v1/urls/recent/limit/4/"
        assert blocklist.url == "http://localhost:5173/api/blocklist/lists/all.txt"

    def test_fetch_deadline(self):
        assert fetch_deadline(PipelineSettings(fetch_timeout=10, fetch_retries=2)) == 50.0
        assert fetch_deadline(PipelineSettings(fetch_timeout=10, fetch_retries=3)) == 90.0
        assert fetch_deadline(PipelineSettings(fetch_timeout=5, fetch_retries=1)) == 5.0

    def test_fetch_deadline_covers_retry_after(self):
        settings = PipelineSettings()
        assert fetch_deadline(settings) >= MAX_RETRY_AFTER_SEC + settings.fetch_timeout
        c = PipelineCoordinator(settings, feeds=[])
        assert c.scheduler.fetch_deadline == fetch_deadline(settings)

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError):
            PipelineCoordinator(PipelineSettings(max_events=0), feeds=[])

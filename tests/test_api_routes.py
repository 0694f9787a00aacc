"""
Tests for the pipeline API routes (FastAPI TestClient).
"""

import pytest
from fastapi.testclient import TestClient

from threatwatch.api.main import create_app
from threatwatch.api.routes import services
from threatwatch.core.config import PipelineSettings
from threatwatch.events.models import EventType, SecurityEvent, Severity
from threatwatch.pipeline.coordinator import PipelineCoordinator


def _event(source_ip, severity=Severity.HIGH):
    return SecurityEvent(
        event_type=EventType.PRIVILEGE_ESCALATION,
        severity=severity,
        description="Unauthorized privilege escalation attempt",
        source_ip=source_ip,
        dest_ip="10.0.1.1",
        user="service_account",
    )


@pytest.fixture
def coordinator():
    settings = PipelineSettings(synthetic_interval=3600, live_interval=3600, stagger_delay=0)
    c = PipelineCoordinator(settings, feeds=[])
    yield c
    c.shutdown()


@pytest.fixture
def client(coordinator):
    app = create_app(coordinator, autostart=False)
    return TestClient(app)


class TestReadRoutes:
    def test_snapshot(self, client, coordinator):
        coordinator.ingest(_event("192.168.1.100"))
        resp = client.get("/api/snapshot")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data["events"]) == 1
        assert data["events"][0]["status"] == "blocked"
        assert data["alerts"][0]["actions"] == [
            "IP Blocked", "Firewall Rule Added", "Incident Ticket Created",
        ]
        assert data["metrics"]["blocked_threats"] == 1
        assert data["taken_at"]

    def test_events_limit(self, client, coordinator):
        for ip in ("198.51.100.1", "198.51.100.2", "198.51.100.3"):
            coordinator.ingest(_event(ip, severity=Severity.LOW))
        resp = client.get("/api/events", params={"limit": 2})
        assert resp.status_code == 200
        assert [e["source_ip"] for e in resp.json()] == ["198.51.100.3", "198.51.100.2"]

    def test_events_limit_validated(self, client):
        assert client.get("/api/events", params={"limit": 0}).status_code == 422

    def test_alerts(self, client, coordinator):
        coordinator.ingest(_event("198.51.100.9", severity=Severity.CRITICAL))
        resp = client.get("/api/alerts")
        assert resp.status_code == 200
        [alert] = resp.json()
        assert alert["status"] == "pending"
        assert alert["title"] == "Manual Review Required: PRIVILEGE_ESCALATION"

    def test_metrics(self, client, coordinator):
        coordinator.ingest(_event("203.0.113.42"))
        coordinator.ingest(_event("198.51.100.9", severity=Severity.CRITICAL))
        assert client.get("/api/metrics").json() == {
            "total_events": 2,
            "critical_alerts": 1,
            "blocked_threats": 1,
            "active_incidents": 1,
        }

    def test_status(self, client):
        data = client.get("/api/status").json()
        assert data["mode"] == "stopped"
        assert data["indicators"] == 5
        assert "scheduler" in data


class TestModeRoute:
    def test_switch_mode(self, client, coordinator):
        resp = client.put("/api/mode", json={"mode": "synthetic"})
        assert resp.status_code == 200
        assert resp.json() == {"mode": "synthetic", "changed": True}

        resp = client.put("/api/mode", json={"mode": "synthetic"})
        assert resp.json() == {"mode": "synthetic", "changed": False}

    def test_unknown_mode(self, client, coordinator):
        resp = client.put("/api/mode", json={"mode": "stopped"})
        assert resp.status_code == 422
        assert coordinator.mode.value == "stopped"

    def test_missing_body(self, client):
        assert client.put("/api/mode", json={}).status_code == 422


class TestIntelRoutes:
    def test_lookup_known(self, client):
        data = client.get("/api/intel/203.0.113.42").json()
        assert data["reputation"] == "malicious"
        assert data["score"] == 88
        assert data["category"] == "Malware Distribution"
        assert data["provenance"] == "local index"

    def test_lookup_unknown(self, client):
        data = client.get("/api/intel/8.8.8.8").json()
        assert data["reputation"] == "clean"
        assert data["score"] == 10
        assert data["category"] == "Unknown"
        assert data["provenance"] == "no data"

    def test_list_indicators(self, client):
        assert "malware.exe" in client.get("/api/intel").json()


class TestUninitialized:
    def test_service_unavailable(self, client):
        services.coordinator = None
        assert client.get("/api/metrics").status_code == 503

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from carrier_ingest.api.app import app, create_app
from carrier_ingest.backend.native.http_client import FixtureFetcher
from carrier_ingest.pipeline import ingest_markup
from carrier_ingest.scheduler.runner import SyncOrchestrator
from carrier_ingest.settings import SyncSettings
from carrier_ingest.storage import MemoryStore


SEEDED_AT = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.fixture
def orchestrator(snapshot_html, broker_html):
    fetcher = FixtureFetcher(pages={"11": snapshot_html, "12": broker_html})
    return SyncOrchestrator(
        MemoryStore(),
        fetcher,
        SyncSettings(request_delay_ms=0, concurrency=2),
    )


@pytest.fixture
def client(orchestrator):
    return TestClient(create_app(orchestrator))


def test_routes_exist():
    paths = {route.path for route in app.routes}
    assert "/health" in paths
    assert "/api/jobs" in paths
    assert "/api/jobs/{job_id}" in paths
    assert "/api/jobs/{job_id}/cancel" in paths
    assert "/api/carriers/{external_id}" in paths
    assert "/api/carriers/{external_id}/insurance" in paths
    assert "/api/carriers/{external_id}/safety" in paths


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_job_lifecycle(client):
    r = client.post("/api/jobs", json={"job_type": "explicit", "targets": ["11", "12", "13"]})
    assert r.status_code == 200
    job = r.json()
    assert job["status"] == "pending"
    assert job["targets"] == ["11", "12", "13"]

    # TestClient runs background tasks before returning.
    r = client.get(f"/api/jobs/{job['id']}")
    assert r.status_code == 200
    done = r.json()
    assert done["status"] == "completed"
    assert (done["processed"], done["updated"], done["skipped"], done["failed"]) == (3, 1, 1, 1)
    assert done["errors"][0]["external_id"] == "13"

    listed = client.get("/api/jobs").json()
    assert [j["id"] for j in listed] == [job["id"]]


def test_job_without_run_can_be_cancelled(client):
    job = client.post(
        "/api/jobs", json={"job_type": "explicit", "targets": ["11"], "run": False}
    ).json()
    r = client.post(f"/api/jobs/{job['id']}/cancel")
    assert r.status_code == 200
    assert r.json()["cancelled"] is True
    assert r.json()["status"] == "completed"


def test_invalid_job_requests(client):
    assert client.post("/api/jobs", json={"job_type": "hourly"}).status_code == 400
    assert client.post("/api/jobs", json={"job_type": "explicit", "targets": ["x"]}).status_code == 400
    assert client.post("/api/jobs", json={"job_type": "daily", "limit": 0}).status_code == 400
    assert client.get("/api/jobs/nope").status_code == 404
    assert client.post("/api/jobs/nope/cancel").status_code == 404


def test_carrier_lookup(client, orchestrator, snapshot_html):
    ingest_markup(orchestrator.store, snapshot_html, "1234567", now=SEEDED_AT)
    r = client.get("/api/carriers/USDOT 1234567")
    assert r.status_code == 200
    data = r.json()
    assert data["legal_name"] == "ACME TRUCKING LLC"
    assert data["trust_score"] == 65
    assert data["trust_description"] == "Basic Trust"
    assert client.get("/api/carriers/abc").status_code == 400
    assert client.get("/api/carriers/999").status_code == 404


def test_carrier_insurance(client, orchestrator, snapshot_html):
    ingest_markup(orchestrator.store, snapshot_html, "1234567", now=SEEDED_AT)
    r = client.get("/api/carriers/1234567/insurance", params={"now": "2026-12-24T00:00:00Z"})
    assert r.status_code == 200
    data = r.json()
    assert data["days_until_expiry"] == 7
    assert data["current_tier"] == "7d"
    assert data["next_alert_tier"] == "7d"
    assert data["alert_key"] == "1234567:7d:2026-12-31"
    assert data["risk_score"] == 35

    r = client.get(
        "/api/carriers/1234567/insurance",
        params={"now": "2026-12-24T00:00:00Z", "sent": "30d,15d,7d"},
    )
    assert r.json()["next_alert_tier"] is None
    assert r.json()["alert_key"] is None
    assert client.get("/api/carriers/1234567/insurance", params={"now": "later"}).status_code == 400


def test_carrier_safety(client, orchestrator, snapshot_html):
    ingest_markup(orchestrator.store, snapshot_html, "1234567", now=SEEDED_AT)
    r = client.get("/api/carriers/1234567/safety", params={"now": "2026-10-02T00:00:00Z"})
    assert r.status_code == 200
    data = r.json()
    assert data["safety_rating"] == "satisfactory"
    assert data["risk_score"] == 100
    assert data["stability"]["trend"] == "stable"
    assert len(data["history"]) == 1

import pytest

from app.features.scan.routes.scan import get_scan_pipeline
from app.features.scan.services.orchestration.scan_pipeline import ScanPipeline
from app.platform.config import Settings
from app.platform.db.session import SessionLocal


@pytest.fixture
def scan_client(client, test_app, collaborators):
    """Client whose scan pipeline uses in-memory fetchers instead of the network."""
    pipeline = ScanPipeline(SessionLocal, collaborators, Settings(RANK_CHECK_DELAY_MS=0))
    test_app.dependency_overrides[get_scan_pipeline] = lambda: pipeline
    yield client
    test_app.dependency_overrides.pop(get_scan_pipeline, None)


def test_start_scan_runs_in_background(scan_client):
    response = scan_client.post("/api/v1/scan", json={"url": "https://routes-one.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["message"] == "Scan started successfully"
    scan_id = body["data"]["scan_id"]
    assert scan_id.startswith("scan_")
    assert body["data"]["deduplicated"] is False

    # background tasks have finished by the time the test client returns
    status_response = scan_client.get(f"/api/v1/scan/{scan_id}/status")
    assert status_response.status_code == 200
    data = status_response.json()["data"]
    assert data["status"] == "preview_ready"
    assert data["progress"] == 100
    assert data["message"] == "Scan complete!"

    report = scan_client.get(f"/api/v1/scan/{scan_id}").json()["data"]
    assert report["domain"] == "routes-one.com"
    assert report["scan_mode"] == "light"
    assert report["findings"]
    assert report["score_summary"]["overall"] is not None
    assert report["agent_summary"]["total"] == 4


def test_same_day_request_returns_existing_scan(scan_client):
    first = scan_client.post("/api/v1/scan", json={"url": "routes-two.com"}).json()["data"]
    second = scan_client.post("/api/v1/scan", json={"url": "https://www.routes-two.com/about"}).json()

    assert second["message"] == "Existing scan found for today"
    assert second["data"]["deduplicated"] is True
    assert second["data"]["scan_id"] == first["scan_id"]


def test_force_bypasses_deduplication(scan_client):
    first = scan_client.post("/api/v1/scan", json={"url": "routes-three.com"}).json()["data"]
    second = scan_client.post("/api/v1/scan", json={"url": "routes-three.com", "force": True}).json()["data"]

    assert second["deduplicated"] is False
    assert second["scan_id"] != first["scan_id"]


def test_invalid_url_is_rejected(scan_client):
    response = scan_client.post("/api/v1/scan", json={"url": "ftp://routes-four.com"})

    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid URL:")


def test_invalid_mode_fails_validation(scan_client):
    response = scan_client.post("/api/v1/scan", json={"url": "routes-five.com", "mode": "deep"})

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_unknown_scan_returns_404(scan_client):
    assert scan_client.get("/api/v1/scan/scan_0_missing/status").status_code == 404
    response = scan_client.get("/api/v1/scan/scan_0_missing")
    assert response.status_code == 404
    assert response.json()["message"] == "Scan not found"


def test_rollup_endpoint(scan_client):
    scan_client.post("/api/v1/scan", json={"url": "routes-six.com"})

    response = scan_client.get("/api/v1/rollups/routes-six.com")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["domain"] == "routes-six.com"
    assert data["scan_count"] == 1
    assert len(data["score_trend"]) == 1
    assert data["scores"]["overall"] == data["score_trend"][0]["score"]


def test_missing_rollup_returns_404(scan_client):
    response = scan_client.get("/api/v1/rollups/never-scanned.com")

    assert response.status_code == 404
    assert response.json()["message"] == "Rollup not found"

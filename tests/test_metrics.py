from fastapi.testclient import TestClient

from src.companion.api.main import app
from src.companion.observability.metrics import sanitize_path


client = TestClient(app)


def test_metrics_endpoint_exposes_histogram():
    # Trigger a request to ensure histogram has an observation
    r = client.get("/health")
    assert r.status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text

    assert "# HELP companion_request_latency_seconds" in body
    assert "# TYPE companion_request_latency_seconds histogram" in body
    assert 'path="/health"' in body


def test_stream_and_upload_counters_are_registered():
    client.post("/upload", files={"file": ("cv.txt", b"hello", "text/plain")})
    body = client.get("/api/metrics").text
    assert "companion_uploads_total" in body
    assert 'outcome="stored"' in body
    assert "companion_active_connections" in body
    assert "companion_fragments_relayed_total" in body
    assert "companion_turns_total" in body


def test_sanitize_path_keeps_first_segment():
    assert sanitize_path("/api/upload?x=1") == "/api"
    assert sanitize_path("/upload") == "/upload"
    assert sanitize_path("") == "/"


def test_root_and_api_root_describe_service():
    assert client.get("/").json()["name"] == "Companion Chat API"
    assert client.get("/api").json() == client.get("/").json()

from fastapi.testclient import TestClient

from app.main import app


def test_health():
    with TestClient(app) as c:
        r = c.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}


def test_ready_reports_store_and_providers_without_secrets():
    with TestClient(app) as c:
        r = c.get("/health/ready")
        assert r.status_code == 200
        data = r.json()
        assert data["store"] == "connected"
        assert data["providers"]["cpx"]["secret"] == "set"
        assert data["providers"]["adgem"]["scheme"] == "hmac"
        assert "cpx-test-secret" not in r.text

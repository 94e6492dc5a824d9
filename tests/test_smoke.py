from app.umbra.config import normalize_database_url
from tests.conftest import PROCESSOR


def test_normalize_database_url():
    assert normalize_database_url("postgres://u:p@db:5432/umbra") == "postgresql+psycopg://u:p@db:5432/umbra"
    assert normalize_database_url("postgresql://db/umbra") == "postgresql+psycopg://db/umbra"
    assert normalize_database_url("postgresql+psycopg://db/umbra") == "postgresql+psycopg://db/umbra"
    assert normalize_database_url(" sqlite:///umbra.db ") == "sqlite:///umbra.db"


def test_health_ok(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json["status"] == "healthy"
    assert r.json["database"] == "connected"
    assert r.json["environment"] == "test"
    assert r.json["uptimeSeconds"] >= 0


def test_health_quick_skips_details(client):
    r = client.get("/api/health?quick=1")
    assert r.status_code == 200
    assert "environment" not in r.json


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"] == "Not found"


def test_login_and_admin_access(client, login):
    # Anonymous is rejected
    r = client.get("/api/admin/users")
    assert r.status_code == 401

    login()
    r = client.get("/api/admin/users")
    assert r.status_code == 200
    emails = {u["email"] for u in r.json["users"]}
    assert "admin@example.com" in emails


def test_processor_cannot_reach_admin(client, login):
    login(PROCESSOR)
    r = client.get("/api/admin/users")
    assert r.status_code == 403
    assert r.json["error"] == "Insufficient permissions"


def test_health_reports_unreachable_database(client, monkeypatch):
    monkeypatch.setattr("app.umbra.routes.database_ok", lambda: False)
    r = client.get("/api/health")
    assert r.status_code == 503
    assert r.json["status"] == "unhealthy"
    assert r.json["database"] == "disconnected"

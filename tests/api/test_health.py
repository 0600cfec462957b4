from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # In tests neither Postgres nor Redis is configured
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_metrics_exposes_authorization_counters(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "authz_decisions_total" in resp.text
    assert "tenant_resolutions_total" in resp.text


def test_request_id_is_generated(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.headers["X-Request-ID"]


def test_request_id_is_propagated(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "trace-abc"})
    assert resp.headers["X-Request-ID"] == "trace-abc"

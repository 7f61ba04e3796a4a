from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Neither backing service is configured in tests.
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_returns_200_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_metrics_endpoint_exposes_unlock_series(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "unlock_pass_runs_total" in resp.text
    assert "unlock_notifications_total" in resp.text
    assert "access_gate_denials_total" in resp.text

"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against a live store
  - No authentication required
  - 503 "degraded" when the database round trip fails
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

import api.main


def test_health_returns_200_with_components(client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == api.main.API_VERSION
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(client):
    """Health endpoint is accessible without any authentication headers."""
    resp = client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_degraded_when_database_fails(client, monkeypatch):
    """A failed ping flips status to degraded and the code to 503."""

    def broken_ping(engine):
        raise SQLAlchemyError("database is gone")

    monkeypatch.setattr(api.main, "ping", broken_ping)
    resp = client.get("/api/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"

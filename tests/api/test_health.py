from __future__ import annotations

from app.config import settings
from app.core import database


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["version"] == settings.app_version


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


def test_readiness_without_database(client, monkeypatch):
    monkeypatch.setattr(database, "engine", None)

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert response.json()["database"] == "memory"


def test_readiness_reports_unavailable_database(client, monkeypatch):
    monkeypatch.setattr(database, "check_database_health", lambda: False)

    response = client.get("/health/ready")

    assert response.status_code == 503

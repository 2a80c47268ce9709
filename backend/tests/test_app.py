"""Tests for application assembly (CORS, health)."""
import pytest
from fastapi.testclient import TestClient

from app import main
from app.config import AppConfig, DatabaseSettings, ServerSettings


@pytest.fixture
def restricted_config():
    return AppConfig(
        server=ServerSettings(allowed_origins=["https://good.example"]),
        database=DatabaseSettings(path=":memory:"),
    )


def preflight(client, origin):
    return client.options("/api/auth/login", headers={
        "Origin": origin,
        "Access-Control-Request-Method": "POST",
    })


def test_cors_uses_configured_origins(restricted_config):
    with TestClient(main.create_app(restricted_config)) as client:
        allowed = preflight(client, "https://good.example")
        denied = preflight(client, "https://evil.example")

    assert allowed.headers.get("access-control-allow-origin") == "https://good.example"
    assert "access-control-allow-origin" not in denied.headers


def test_default_app_reads_origins_from_loaded_config(restricted_config, monkeypatch):
    monkeypatch.setattr(main, "get_config", lambda: restricted_config)

    with TestClient(main.create_app()) as client:
        denied = preflight(client, "https://evil.example")
        health = client.get("/health")

    assert "access-control-allow-origin" not in denied.headers
    assert health.json() == {"status": "ok"}

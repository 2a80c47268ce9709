"""Shared test fixtures and configuration for backend tests."""
import itertools

import pytest
from fastapi.testclient import TestClient

from app.auth.service import IdentityResolver, TokenService, hash_password
from app.config import AppConfig, DatabaseSettings
from app.database import Database
from app.main import create_app
from app.messages.service import MessageStore
from app.realtime.delivery import DeliveryCoordinator
from app.realtime.registry import PresenceRegistry
from app.users.service import UserStore

TEST_PASSWORD = "secret123"

_emails = itertools.count(1)


class FakeHandle:
    """Stands in for ConnectionHandle: records pushed frames instead of sending."""

    def __init__(self, name: str = "handle") -> None:
        self.id = name
        self.frames = []
        self.is_open = True

    def push(self, event_type, payload=None) -> bool:
        if not self.is_open:
            return False
        self.frames.append({"type": event_type, **(payload or {})})
        return True

    def of_type(self, event_type):
        return [f for f in self.frames if f["type"] == event_type]


@pytest.fixture
def test_config():
    """Config backed by a throwaway in-memory database."""
    return AppConfig(database=DatabaseSettings(path=":memory:"))


@pytest.fixture
def api_client(test_config):
    """TestClient entered as a context manager so the lifespan builds services."""
    with TestClient(create_app(test_config)) as client:
        yield client


@pytest.fixture
def services(api_client):
    return api_client.app.state.services


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def users(db):
    return UserStore(db)


@pytest.fixture
def messages(db):
    return MessageStore(db)


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def coordinator(registry, messages, users):
    return DeliveryCoordinator(registry, messages, users)


@pytest.fixture
def tokens(test_config):
    return TokenService.from_config(test_config)


@pytest.fixture
def resolver(tokens, users):
    return IdentityResolver(tokens, users)


@pytest.fixture
def make_handle():
    return FakeHandle


@pytest.fixture
def make_user(users):
    """Create a user directly in the store (skips the slow password hash per call)."""
    password_hash = hash_password(TEST_PASSWORD)

    def _make(name: str):
        return users.create(
            name=name,
            email=f"{name.lower()}-{next(_emails)}@example.com",
            password_hash=password_hash,
        )

    return _make


def register(client, name: str) -> dict:
    """Register through the API and return ``{"id", "token", "headers"}``."""
    resp = client.post("/api/auth/register", json={
        "name": name,
        "email": f"{name.lower()}-{next(_emails)}@example.com",
        "password": TEST_PASSWORD,
    })
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {
        "id": body["user"]["id"],
        "token": body["token"],
        "headers": {"Authorization": f"Bearer {body['token']}"},
    }


@pytest.fixture
def register_user(api_client):
    def _register(name: str) -> dict:
        return register(api_client, name)
    return _register

"""Shared fixtures: a controllable clock, both storage backends and an API client."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from gatelink.config import Settings
from gatelink.database import make_engine
from gatelink.main import create_app
from gatelink.registry import AdRegistry, LinkRegistry
from gatelink.sessions import SessionStateMachine
from gatelink.storage import MemoryStorage, SqlStorage

ADMIN_PASSWORD = "correct horse battery staple"


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    if request.param == "memory":
        return MemoryStorage()
    return SqlStorage(make_engine("sqlite://"))


@pytest.fixture
def links(storage, clock):
    return LinkRegistry(storage, clock=clock)


@pytest.fixture
def ads(storage):
    return AdRegistry(storage)


@pytest.fixture
def machine(storage, links, clock):
    return SessionStateMachine(storage, links, clock=clock)


@pytest.fixture(params=["memory", "sql"])
def settings(request):
    return Settings(
        storage_backend=request.param,
        database_url="sqlite://",
        admin_password=ADMIN_PASSWORD,
        seed_demo=False,
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/admin/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}

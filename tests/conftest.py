from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from isagip.access.models import AuthTier, Role
from isagip.auth.models import Session
from isagip.shared import config
from isagip.shared.seed import seed_accounts, seed_ambulances
from isagip.shared.store import MemoryStore, set_store
from isagip.shared.utils import utcnow


def make_session(role: Role, identity: str, tier: AuthTier = AuthTier.CREDENTIAL) -> Session:
    now = utcnow()
    return Session(id=f"test-{identity}", role=role, identity=identity, tier=tier,
                   created_at=now, expires_at=now + timedelta(hours=1))


@pytest.fixture
async def store():
    store = MemoryStore()
    await seed_accounts(store)
    await seed_ambulances(store)
    return store


@pytest.fixture
def staff():
    return make_session(Role.BARANGAY_STAFF, "staff")


@pytest.fixture
def admin():
    return make_session(Role.SYSTEM_ADMIN, "admin")


@pytest.fixture
def viewer():
    return make_session(Role.LIVE_VIEWER, "live_viewer", AuthTier.GUEST)


@pytest.fixture
def client(monkeypatch):
    from main import app

    monkeypatch.setattr(config, "SEED_DEMO_DATA", False)
    set_store(MemoryStore())
    with TestClient(app) as test_client:
        yield test_client
    set_store(None)


def auth_headers(client: TestClient, username: str, password: str = "pass") -> dict:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}

import pytest
from fastapi.testclient import TestClient

from plutus.api.health import get_health_providers
from plutus.main import app
from plutus.providers.base import Provider

client = TestClient(app)


class StubProvider(Provider):
    def __init__(self, name, status):
        self.name = name
        self.status = status
        self.closed = False

    async def ready(self):
        return True

    async def health_check(self):
        return {"status": self.status}

    async def close(self):
        self.closed = True


@pytest.fixture
def providers():
    stubs = [StubProvider("plutus", "healthy"), StubProvider("aptos", "healthy")]
    app.dependency_overrides[get_health_providers] = lambda: stubs
    yield stubs
    app.dependency_overrides.pop(get_health_providers, None)


def test_all_providers_healthy(providers):
    resp = client.get("/healthz")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["providers"] == {"plutus": {"status": "healthy"}, "aptos": {"status": "healthy"}}
    assert data["available_providers"] == 2
    assert data["total_providers"] == 2
    assert isinstance(data["custodial_signer"], bool)
    assert all(p.closed for p in providers)


def test_node_error_degrades_status(providers):
    providers[1].status = "error"

    data = client.get("/healthz").json()

    assert data["status"] == "degraded"
    assert data["available_providers"] == 1
    assert all(p.closed for p in providers)

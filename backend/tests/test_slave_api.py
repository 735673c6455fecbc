"""Integration tests for the slave HTTP API."""
import pytest

from pingpals.main import create_app
from pingpals.services.slave import SlaveNode, resolve_slave_id

from conftest import AUTH, FakeExecutor


@pytest.fixture
def slave_node(settings):
    settings = settings.model_copy(update={"mode": "slave"})
    return SlaveNode(settings, executor=FakeExecutor())


@pytest.fixture
def client(slave_node, asgi_client):
    return asgi_client(create_app(slave_node.settings, node=slave_node))


HTTP_SERVICE = {"id": "svc-1", "name": "Example", "type": "http", "interval": 60, "timeout": 5000, "url": "http://example.test/"}


async def test_health_needs_no_auth(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_add_service(client, slave_node):
    response = await client.post("/service", json=HTTP_SERVICE, headers=AUTH)

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert slave_node.registry.get("svc-1").url == "http://example.test/"


async def test_http_service_requires_url(client, slave_node):
    body = {k: v for k, v in HTTP_SERVICE.items() if k != "url"}
    response = await client.post("/service", json=body, headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"detail": "URL is required for HTTP services"}
    assert len(slave_node.registry) == 0


async def test_icmp_service_requires_host(client):
    body = {"id": "svc-2", "name": "Gateway", "type": "icmp", "interval": 30, "timeout": 1000}
    response = await client.post("/service", json=body, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"] == "Host is required for ICMP services"


async def test_unknown_type_rejected(client):
    response = await client.post("/service", json={**HTTP_SERVICE, "type": "tcp"}, headers=AUTH)
    assert response.status_code == 422


async def test_requires_api_key(client):
    response = await client.post("/service", json=HTTP_SERVICE)
    assert response.status_code == 401

    response = await client.post("/service", json=HTTP_SERVICE, headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


async def test_remove_service(client, slave_node):
    await client.post("/service", json=HTTP_SERVICE, headers=AUTH)

    response = await client.delete("/service/svc-1", headers=AUTH)

    assert response.status_code == 200
    assert "svc-1" not in slave_node.registry


async def test_remove_unknown_service(client):
    response = await client.delete("/service/nope", headers=AUTH)
    assert response.status_code == 404


async def test_list_services(client):
    await client.post("/service", json=HTTP_SERVICE, headers=AUTH)
    response = await client.get("/services", headers=AUTH)
    assert [s["id"] for s in response.json()] == ["svc-1"]


def test_generated_slave_id_is_kept(settings):
    settings = settings.model_copy(update={"slave_id": None})
    first = resolve_slave_id(settings)
    assert first.startswith("slave-")
    assert resolve_slave_id(settings) == first

from __future__ import annotations

import pytest
from fakes import QR_PAYLOAD, FakeClientFactory

from sessiongen.coordinator import ConnectionCoordinator
from sessiongen.server import SessionServer
from sessiongen.status import ConnectionState


@pytest.fixture
def server(coordinator: ConnectionCoordinator) -> SessionServer:
    return SessionServer(coordinator)


@pytest.mark.asyncio
async def test_health_and_index(aiohttp_client, server) -> None:
    client = await aiohttp_client(server.app)

    resp = await client.get("/health")
    assert resp.status == 200
    assert await resp.text() == "OK"

    resp = await client.get("/")
    assert resp.status == 200
    assert resp.content_type == "text/html"
    assert "/start-session" in await resp.text()


@pytest.mark.asyncio
async def test_status_starts_idle(aiohttp_client, server) -> None:
    client = await aiohttp_client(server.app)

    resp = await client.get("/status")
    assert resp.status == 200
    assert await resp.json() == {
        "state": "idle",
        "method": None,
        "pendingQr": None,
        "pendingPairingCode": None,
        "error": None,
        "persistError": None,
        "loggedOut": None,
        "account": None,
    }


@pytest.mark.asyncio
async def test_qr_session_flow(aiohttp_client, server, coordinator) -> None:
    client = await aiohttp_client(server.app)

    resp = await client.get("/qr.svg")
    assert resp.status == 404
    assert "error" in await resp.json()

    resp = await client.post("/start-session", json={"method": "qr"})
    assert resp.status == 202
    data = await resp.json()
    assert data["state"] == "connecting"
    assert data["method"] == "qr"

    await coordinator.attempt.setup_done.wait()
    data = await (await client.get("/status")).json()
    assert data["state"] == "qr_pending"
    assert data["pendingQr"] == QR_PAYLOAD

    resp = await client.get("/qr.svg")
    assert resp.status == 200
    assert resp.content_type == "image/svg+xml"
    assert resp.headers["Cache-Control"] == "no-store"
    assert b"svg" in await resp.read()


@pytest.mark.asyncio
async def test_second_start_is_a_conflict(aiohttp_client, server, coordinator) -> None:
    client = await aiohttp_client(server.app)

    assert (await client.post("/start-session", json={"method": "qr"})).status == 202
    await coordinator.attempt.setup_done.wait()

    resp = await client.post("/start-session", json={"method": "pairing", "phoneNumber": "509"})
    assert resp.status == 409
    data = await resp.json()
    assert data["state"] == "qr_pending"
    assert "error" in data
    assert coordinator.state is ConnectionState.QR_PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"method": "pairing"},
        {"method": "pairing", "phoneNumber": ""},
        {"method": "pairing", "phoneNumber": "+509 1234 5678"},
        {"method": "pairing", "phoneNumber": 50912345678},
        {"method": "sms"},
        {},
        ["qr"],
    ],
)
async def test_invalid_start_requests(
    aiohttp_client, server, coordinator, qr_clients, body
) -> None:
    client = await aiohttp_client(server.app)

    resp = await client.post("/start-session", json=body)
    assert resp.status == 400
    assert "error" in await resp.json()
    assert coordinator.state is ConnectionState.IDLE
    assert qr_clients.clients == []


@pytest.mark.asyncio
async def test_malformed_json_is_rejected(aiohttp_client, server) -> None:
    client = await aiohttp_client(server.app)

    resp = await client.post(
        "/start-session", data="{method", headers={"Content-Type": "application/json"}
    )
    assert resp.status == 400


@pytest.mark.asyncio
async def test_pairing_via_form_post(aiohttp_client, stores, status) -> None:
    clients = FakeClientFactory(pairing_code="PAIR-CODE")
    coordinator = ConnectionCoordinator(store_factory=stores, client_factory=clients, status=status)
    client = await aiohttp_client(SessionServer(coordinator).app)

    resp = await client.post(
        "/start-session", data={"method": "pairing", "phoneNumber": "50912345678"}
    )
    assert resp.status == 202

    await coordinator.attempt.setup_done.wait()
    data = await (await client.get("/status")).json()
    assert data["state"] == "pairing_pending"
    assert data["pendingPairingCode"] == "PAIR-CODE"
    assert data["pendingQr"] is None
    assert clients.client.pairing_requests == ["50912345678@s.whatsapp.net"]


@pytest.mark.asyncio
async def test_app_cleanup_closes_active_attempt(
    aiohttp_client, server, coordinator, stores
) -> None:
    client = await aiohttp_client(server.app)
    await client.post("/start-session", json={"method": "qr"})
    await coordinator.attempt.setup_done.wait()

    await client.close()
    assert coordinator.state is ConnectionState.CLOSED
    assert stores.store.closed

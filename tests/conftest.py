from __future__ import annotations

import pytest
from fakes import QR_PAYLOAD, FakeClientFactory, RecordingStatus, RecordingStoreFactory

from sessiongen.coordinator import ConnectionCoordinator
from sessiongen.log import reset_logging
from sessiongen.store.memory import MemoryBackend


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def stores(backend: MemoryBackend) -> RecordingStoreFactory:
    return RecordingStoreFactory(backend)


@pytest.fixture
def status() -> RecordingStatus:
    return RecordingStatus()


@pytest.fixture
def qr_clients() -> FakeClientFactory:
    return FakeClientFactory(qr=QR_PAYLOAD)


@pytest.fixture
def coordinator(
    stores: RecordingStoreFactory, qr_clients: FakeClientFactory, status: RecordingStatus
) -> ConnectionCoordinator:
    return ConnectionCoordinator(store_factory=stores, client_factory=qr_clients, status=status)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()

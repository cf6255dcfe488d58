from __future__ import annotations

import pytest

from sessiongen.auth.cache import KeyCache
from sessiongen.exceptions import StoreUnavailable
from sessiongen.persistence import PersistenceQueue
from sessiongen.store.memory import MemoryBackend, MemoryCredentialStore


class CountingStore(MemoryCredentialStore):
    def __init__(self, backend: MemoryBackend | None = None) -> None:
        super().__init__(backend)
        self.fetches: list[tuple[str, list[str]]] = []

    async def get_keys(self, key_type, ids):
        self.fetches.append((key_type, list(ids)))
        return await super().get_keys(key_type, ids)


async def _cache(
    backend: MemoryBackend, *, seed=None
) -> tuple[KeyCache, PersistenceQueue, CountingStore]:
    store = CountingStore(backend)
    await store.connect()
    writer = PersistenceQueue(store)
    return KeyCache(store, writer, seed=seed), writer, store


@pytest.mark.asyncio
async def test_seeded_keys_are_served_without_store_reads() -> None:
    cache, writer, store = await _cache(MemoryBackend(), seed={"pre-key": {"1": b"a"}})
    assert await cache.get("pre-key", ["1"]) == {"1": b"a"}
    assert store.fetches == []
    await writer.aclose()


@pytest.mark.asyncio
async def test_misses_are_fetched_once_and_unknown_ids_map_to_none() -> None:
    backend = MemoryBackend(keys={"session": {"alice.0": b"s"}})
    cache, writer, store = await _cache(backend)

    assert await cache.get("session", ["alice.0", "bob.0"]) == {"alice.0": b"s", "bob.0": None}
    assert await cache.get("session", ["alice.0"]) == {"alice.0": b"s"}
    assert store.fetches == [("session", ["alice.0", "bob.0"])]
    await writer.aclose()


@pytest.mark.asyncio
async def test_writes_are_visible_immediately_and_persisted() -> None:
    backend = MemoryBackend()
    cache, writer, _ = await _cache(backend)

    await cache.set({"pre-key": {"1": b"a", "2": b"b"}})
    assert await cache.get("pre-key", ["1", "2"]) == {"1": b"a", "2": b"b"}
    assert len(cache) == 2

    await writer.drain()
    assert backend.keys == {"pre-key": {"1": b"a", "2": b"b"}}
    await writer.aclose()


@pytest.mark.asyncio
async def test_deleted_key_is_not_resurrected_from_store() -> None:
    backend = MemoryBackend(keys={"pre-key": {"1": b"a"}})
    cache, writer, store = await _cache(backend)

    await cache.set_one("pre-key", "1", None)
    # The delete may still be queued; the tombstone answers the read.
    assert await cache.get("pre-key", ["1"]) == {"1": None}
    assert store.fetches == []

    await writer.drain()
    assert backend.keys == {}
    await writer.aclose()


@pytest.mark.asyncio
async def test_clear_deletes_every_known_key() -> None:
    backend = MemoryBackend(keys={"pre-key": {"1": b"a"}, "session": {"s": b"x"}})
    cache, writer, _ = await _cache(backend, seed=backend.keys)

    await cache.clear()
    await writer.drain()
    assert len(cache) == 0
    assert backend.keys == {}
    await writer.aclose()


@pytest.mark.asyncio
async def test_store_read_failures_propagate() -> None:
    cache, writer, store = await _cache(MemoryBackend())
    await writer.aclose()
    await store.close()
    with pytest.raises(StoreUnavailable):
        await cache.get("session", ["missing"])

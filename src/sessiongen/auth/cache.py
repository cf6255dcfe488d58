from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from .keys import KeyDelta

if TYPE_CHECKING:
    from ..persistence import PersistenceQueue
    from ..store.base import CredentialStore

_ABSENT = object()


class KeyCache:
    """
    Write-through cache in front of a `CredentialStore`'s key buckets.

    Reads are served from memory when possible; writes land in memory
    immediately (read-your-writes for the protocol client) and are queued
    for persistence in emission order. Deletions are remembered as
    tombstones so a pending delete is never undone by a store read.
    """

    def __init__(
        self,
        store: CredentialStore,
        writer: PersistenceQueue,
        *,
        seed: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._store = store
        self._writer = writer
        self._cache: dict[tuple[str, str], Any] = {}
        for key_type, bucket in (seed or {}).items():
            for key_id, value in bucket.items():
                self._cache[(key_type, key_id)] = value

    def __len__(self) -> int:
        return sum(1 for v in self._cache.values() if v is not None)

    async def get(self, key_type: str, ids: Iterable[str]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        missing: list[str] = []
        for key_id in ids:
            value = self._cache.get((key_type, key_id), _ABSENT)
            if value is _ABSENT:
                missing.append(key_id)
            else:
                out[key_id] = value

        if missing:
            fetched = await self._store.get_keys(key_type, missing)
            for key_id in missing:
                value = fetched.get(key_id)
                # Only cache hits; a concurrent `set` may have filled the slot meanwhile.
                if value is not None:
                    value = self._cache.setdefault((key_type, key_id), value)
                else:
                    value = self._cache.get((key_type, key_id))
                out[key_id] = value
        return out

    async def set(self, data: KeyDelta) -> None:
        delta: dict[str, dict[str, Any | None]] = {}
        for key_type, entries in data.items():
            if not entries:
                continue
            delta[key_type] = dict(entries)
            for key_id, value in entries.items():
                self._cache[(key_type, key_id)] = value
        if delta:
            self._writer.merge_keys(delta)

    async def set_one(self, key_type: str, key_id: str, value: Any | None) -> None:
        await self.set({key_type: {key_id: value}})

    async def clear(self) -> None:
        delta: dict[str, dict[str, Any | None]] = {}
        for (key_type, key_id), value in self._cache.items():
            if value is not None:
                delta.setdefault(key_type, {})[key_id] = None
        await self.set(delta)

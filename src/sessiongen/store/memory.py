from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from ..auth.keys import KeyDelta, KeyStoreData, apply_key_delta
from ..auth.state import Credentials
from ..exceptions import StoreUnavailable


@dataclass(slots=True)
class MemoryBackend:
    """The records behind one or more `MemoryCredentialStore` handles."""

    creds: Credentials | None = None
    keys: KeyStoreData = field(default_factory=dict)
    saves: int = 0
    merges: int = 0


_BACKENDS: dict[str, MemoryBackend] = {}


def shared_backend(name: str) -> MemoryBackend:
    backend = _BACKENDS.get(name)
    if backend is None:
        backend = MemoryBackend()
        _BACKENDS[name] = backend
    return backend


class MemoryCredentialStore:
    """
    Process-local store.

    Each instance is a "connection" handle onto a `MemoryBackend`; data
    outlives the handle so a later attempt (or a test) sees what was written.
    """

    def __init__(self, backend: MemoryBackend | None = None) -> None:
        self.backend = backend if backend is not None else MemoryBackend()
        self._connected = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def connect(self) -> None:
        if self._closed:
            raise StoreUnavailable("store is closed")
        self._connected = True

    async def close(self) -> None:
        self._closed = True
        self._connected = False

    def _check(self) -> MemoryBackend:
        if self._closed:
            raise StoreUnavailable("store is closed")
        if not self._connected:
            raise StoreUnavailable("store is not connected")
        return self.backend

    async def load(self) -> tuple[Credentials, KeyStoreData]:
        b = self._check()
        creds = copy.deepcopy(b.creds) if b.creds is not None else {}
        return creds, copy.deepcopy(b.keys)

    async def save_credentials(self, credentials: Credentials) -> None:
        b = self._check()
        b.creds = copy.deepcopy(credentials)
        b.saves += 1

    async def merge_keys(self, delta: KeyDelta) -> None:
        b = self._check()
        for key_type, entries in delta.items():
            # Build the new bucket aside and swap it in whole.
            bucket = dict(b.keys.get(key_type, {}))
            apply_key_delta(bucket, copy.deepcopy(dict(entries)))
            if bucket:
                b.keys[key_type] = bucket
            else:
                b.keys.pop(key_type, None)
        b.merges += 1

    async def get_keys(self, key_type: str, ids: list[str]) -> dict[str, Any]:
        b = self._check()
        bucket = b.keys.get(key_type, {})
        return {i: copy.deepcopy(bucket[i]) for i in ids if i in bucket}

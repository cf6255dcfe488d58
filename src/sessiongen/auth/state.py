from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .keys import KeyDelta

Credentials = dict[str, Any]


class SignalKeyStore(Protocol):
    async def get(self, key_type: str, ids: list[str]) -> dict[str, Any]: ...

    async def set(self, data: KeyDelta) -> None: ...

    async def clear(self) -> None: ...


@dataclass(slots=True)
class AuthenticationState:
    """
    What the protocol client is constructed with.

    `creds` is the in-memory working copy; the client mutates it and emits
    `creds.update`. `keys` is the cache-backed key store.
    """

    creds: Credentials
    keys: SignalKeyStore

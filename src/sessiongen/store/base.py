from __future__ import annotations

from typing import Any, Protocol

from ..auth.keys import KeyDelta, KeyStoreData
from ..auth.state import Credentials


class CredentialStore(Protocol):
    """
    Durable home of one session's `creds` and `keys` records.

    Implementations raise `StoreUnavailable` for transport failures and for
    any call made after `close()`.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def load(self) -> tuple[Credentials, KeyStoreData]: ...

    async def save_credentials(self, credentials: Credentials) -> None: ...

    async def merge_keys(self, delta: KeyDelta) -> None: ...

    async def get_keys(self, key_type: str, ids: list[str]) -> dict[str, Any]: ...

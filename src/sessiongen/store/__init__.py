from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from urllib.parse import unquote, urlsplit

from ..constants import DEFAULT_COLLECTION, DEFAULT_DB_NAME
from ..exceptions import ConfigError
from .base import CredentialStore
from .files import FileCredentialStore
from .memory import MemoryBackend, MemoryCredentialStore, shared_backend

StoreFactory = Callable[[], CredentialStore]

__all__ = [
    "CredentialStore",
    "FileCredentialStore",
    "MemoryBackend",
    "MemoryCredentialStore",
    "StoreFactory",
    "store_factory_from_url",
]


def store_factory_from_url(
    url: str,
    *,
    db_name: str = DEFAULT_DB_NAME,
    collection: str = DEFAULT_COLLECTION,
) -> StoreFactory:
    """
    Map a store address to a factory producing one store handle per attempt.

    - `mongodb://...` / `mongodb+srv://...`: MongoDB
    - `file:///path/to/dir`: directory store
    - `memory://name`: process-local store shared by name
    """

    scheme = urlsplit(url).scheme.lower()
    if scheme in ("mongodb", "mongodb+srv"):
        from .mongo import MongoCredentialStore

        return lambda: MongoCredentialStore(url, db_name=db_name, collection=collection)
    if scheme == "file":
        parts = urlsplit(url)
        folder = Path(unquote(parts.netloc + parts.path))
        return lambda: FileCredentialStore(folder)
    if scheme == "memory":
        backend = shared_backend(urlsplit(url).netloc or "default")
        return lambda: MemoryCredentialStore(backend)
    raise ConfigError(f"unsupported store address scheme: {scheme or url!r}")

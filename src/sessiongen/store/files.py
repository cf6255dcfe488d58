from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from ..auth.keys import KeyDelta, KeyStoreData, apply_key_delta
from ..auth.state import Credentials
from ..exceptions import StoreUnavailable
from ..util import json as bufferjson

_FILE_LOCKS: dict[Path, asyncio.Lock] = {}

CREDS_FILE = "creds.json"
KEYS_PREFIX = "keys-"


def _fix_filename(name: str) -> str:
    return name.replace("/", "__").replace(":", "-")


def _lock_for(path: Path) -> asyncio.Lock:
    lock = _FILE_LOCKS.get(path)
    if lock is None:
        lock = asyncio.Lock()
        _FILE_LOCKS[path] = lock
    return lock


def _replace_text(path: Path, data: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(data, "utf-8")
    os.replace(tmp, path)


async def _read_json(path: Path) -> Any | None:
    try:
        raw = await asyncio.to_thread(path.read_text, "utf-8")
    except FileNotFoundError:
        return None
    return bufferjson.loads(raw)


class FileCredentialStore:
    """
    Directory-backed store in the multi-file auth-state layout.

    - `creds.json` stores the credential record.
    - key material is stored as one `keys-{type}.json` file per key type, each
      replaced atomically so a reader never sees a half-merged bucket.
    """

    def __init__(self, folder: str | Path) -> None:
        self.folder = Path(folder).expanduser()
        self._connected = False
        self._closed = False

    async def connect(self) -> None:
        if self._closed:
            raise StoreUnavailable("store is closed")
        try:
            await asyncio.to_thread(self.folder.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"cannot open store folder {self.folder}: {e}") from e
        self._connected = True

    async def close(self) -> None:
        self._closed = True
        self._connected = False

    def _check(self) -> None:
        if self._closed:
            raise StoreUnavailable("store is closed")
        if not self._connected:
            raise StoreUnavailable("store is not connected")

    def _bucket_path(self, key_type: str) -> Path:
        return self.folder / _fix_filename(f"{KEYS_PREFIX}{key_type}.json")

    async def _read_bucket(self, path: Path) -> dict[str, Any]:
        d = await _read_json(path)
        if d is None:
            return {}
        if not isinstance(d, dict):
            raise StoreUnavailable(f"{path} did not contain an object")
        return d

    async def load(self) -> tuple[Credentials, KeyStoreData]:
        self._check()
        try:
            creds_path = self.folder / CREDS_FILE
            async with _lock_for(creds_path):
                creds = await _read_json(creds_path)
            if creds is None:
                creds = {}
            elif not isinstance(creds, dict):
                raise StoreUnavailable(f"{creds_path} did not contain an object")

            keys: KeyStoreData = {}
            pattern = f"{KEYS_PREFIX}*.json"
            paths = await asyncio.to_thread(lambda: sorted(self.folder.glob(pattern)))
            for p in paths:
                async with _lock_for(p):
                    d = await _read_json(p)
                if isinstance(d, dict) and isinstance(d.get("type"), str):
                    keys[d["type"]] = dict(d.get("entries") or {})
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"failed to load store {self.folder}: {e}") from e
        return creds, keys

    async def save_credentials(self, credentials: Credentials) -> None:
        self._check()
        creds_path = self.folder / CREDS_FILE
        try:
            async with _lock_for(creds_path):
                await asyncio.to_thread(
                    _replace_text, creds_path, bufferjson.dumps(credentials, indent=2)
                )
        except OSError as e:
            raise StoreUnavailable(f"failed to write {creds_path}: {e}") from e

    async def merge_keys(self, delta: KeyDelta) -> None:
        self._check()
        for key_type, entries in delta.items():
            path = self._bucket_path(key_type)
            try:
                async with _lock_for(path):
                    d = await self._read_bucket(path)
                    bucket = dict(d.get("entries") or {})
                    apply_key_delta(bucket, entries)
                    if bucket:
                        doc = {"type": key_type, "entries": bucket}
                        await asyncio.to_thread(_replace_text, path, bufferjson.dumps(doc))
                    else:
                        await asyncio.to_thread(path.unlink, missing_ok=True)
            except (OSError, ValueError) as e:
                raise StoreUnavailable(f"failed to merge {path}: {e}") from e

    async def get_keys(self, key_type: str, ids: list[str]) -> dict[str, Any]:
        self._check()
        path = self._bucket_path(key_type)
        try:
            async with _lock_for(path):
                d = await self._read_bucket(path)
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"failed to read {path}: {e}") from e
        bucket = d.get("entries") or {}
        return {i: bucket[i] for i in ids if i in bucket}

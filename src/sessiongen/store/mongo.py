from __future__ import annotations

from typing import Any

from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from ..auth.keys import KeyDelta, KeyStoreData, apply_key_delta
from ..auth.state import Credentials
from ..constants import (
    CREDS_RECORD_ID,
    DEFAULT_COLLECTION,
    DEFAULT_DB_NAME,
    KEYS_RECORD_ID,
)
from ..exceptions import StoreUnavailable
from ..util import json as bufferjson


def _field_name(key_type: str) -> str:
    # `.` and a leading `$` are path/operator syntax in MongoDB field names.
    return key_type.replace("%", "%25").replace(".", "%2E").replace("$", "%24")


def _key_type(field_name: str) -> str:
    return field_name.replace("%24", "$").replace("%2E", ".").replace("%25", "%")


class MongoCredentialStore:
    """
    MongoDB-backed store.

    The collection holds two records, matching the original deployment:
    - `{"_id": "creds", "id": "creds", "creds": <json>}` holds the credentials.
    - `{"_id": "keys", "id": "keys", "data": {<type>: <json>, ...}}` holds every
      key bucket. A merge rewrites one `data.<type>` field per key type, never
      the whole record.

    Values are stored as Buffer-compatible JSON text: key ids may contain
    characters MongoDB treats specially in field names (`.` and `$`).
    """

    def __init__(
        self,
        url: str,
        *,
        db_name: str = DEFAULT_DB_NAME,
        collection: str = DEFAULT_COLLECTION,
        server_selection_timeout_ms: int = 10_000,
        client: AsyncMongoClient[dict[str, Any]] | None = None,
    ) -> None:
        self.url = url
        self.db_name = db_name
        self.collection_name = collection
        self._timeout_ms = server_selection_timeout_ms
        self._given_client = client
        self._client: AsyncMongoClient[dict[str, Any]] | None = None
        self._collection: AsyncCollection[dict[str, Any]] | None = None
        self._closed = False

    async def connect(self) -> None:
        if self._closed:
            raise StoreUnavailable("store is closed")
        client = self._given_client
        if client is None:
            try:
                client = AsyncMongoClient(self.url, serverSelectionTimeoutMS=self._timeout_ms)
            except PyMongoError as e:
                raise StoreUnavailable(f"invalid MongoDB address: {e}") from e
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            await client.close()
            raise StoreUnavailable(f"cannot reach MongoDB: {e}") from e
        self._client = client
        self._collection = client[self.db_name][self.collection_name]

    async def close(self) -> None:
        self._closed = True
        client, self._client, self._collection = self._client, None, None
        if client is not None:
            await client.close()

    def _coll(self) -> AsyncCollection[dict[str, Any]]:
        if self._closed:
            raise StoreUnavailable("store is closed")
        if self._collection is None:
            raise StoreUnavailable("store is not connected")
        return self._collection

    async def load(self) -> tuple[Credentials, KeyStoreData]:
        coll = self._coll()
        try:
            creds_doc = await coll.find_one({"_id": CREDS_RECORD_ID})
            keys_doc = await coll.find_one({"_id": KEYS_RECORD_ID})
        except PyMongoError as e:
            raise StoreUnavailable(f"failed to load session records: {e}") from e

        creds = _decode(creds_doc.get("creds"), CREDS_RECORD_ID) if creds_doc else {}
        keys: KeyStoreData = {}
        for field, raw in ((keys_doc or {}).get("data") or {}).items():
            bucket = _decode(raw, f"{KEYS_RECORD_ID}.{field}")
            if bucket:
                keys[_key_type(field)] = bucket
        return creds, keys

    async def save_credentials(self, credentials: Credentials) -> None:
        coll = self._coll()
        update = {"$set": {"id": CREDS_RECORD_ID, "creds": bufferjson.dumps(credentials)}}
        try:
            await coll.update_one({"_id": CREDS_RECORD_ID}, update, upsert=True)
        except PyMongoError as e:
            raise StoreUnavailable(f"failed to save credentials: {e}") from e

    async def merge_keys(self, delta: KeyDelta) -> None:
        coll = self._coll()
        for key_type, entries in delta.items():
            path = f"data.{_field_name(key_type)}"
            try:
                bucket = await self._read_bucket(coll, key_type)
                apply_key_delta(bucket, entries)
                if bucket:
                    update: dict[str, Any] = {
                        "$set": {"id": KEYS_RECORD_ID, path: bufferjson.dumps(bucket)}
                    }
                else:
                    update = {"$unset": {path: ""}}
                await coll.update_one({"_id": KEYS_RECORD_ID}, update, upsert=True)
            except PyMongoError as e:
                raise StoreUnavailable(f"failed to merge {key_type!r} keys: {e}") from e

    async def get_keys(self, key_type: str, ids: list[str]) -> dict[str, Any]:
        coll = self._coll()
        try:
            bucket = await self._read_bucket(coll, key_type)
        except PyMongoError as e:
            raise StoreUnavailable(f"failed to read {key_type!r} keys: {e}") from e
        return {i: bucket[i] for i in ids if i in bucket}

    async def _read_bucket(
        self, coll: AsyncCollection[dict[str, Any]], key_type: str
    ) -> dict[str, Any]:
        field = _field_name(key_type)
        doc = await coll.find_one({"_id": KEYS_RECORD_ID}, {f"data.{field}": 1})
        raw = ((doc or {}).get("data") or {}).get(field)
        return _decode(raw, f"{KEYS_RECORD_ID}.{field}")


def _decode(raw: Any, where: str) -> dict[str, Any]:
    if not isinstance(raw, str):
        return {}
    data = bufferjson.loads(raw)
    if not isinstance(data, dict):
        raise StoreUnavailable(f"record {where!r} did not contain an object")
    return data

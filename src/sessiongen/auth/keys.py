from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any, TypeAlias

KeyBucket: TypeAlias = dict[str, Any]
KeyStoreData: TypeAlias = dict[str, KeyBucket]
# key-type -> key-id -> blob, where `None` deletes the entry.
KeyDelta: TypeAlias = Mapping[str, Mapping[str, Any | None]]


def apply_key_delta(bucket: MutableMapping[str, Any], entries: Mapping[str, Any | None]) -> None:
    for key_id, value in entries.items():
        if value is None:
            bucket.pop(key_id, None)
        else:
            bucket[key_id] = value


def apply_key_deltas(key_store: MutableMapping[str, KeyBucket], delta: KeyDelta) -> None:
    """Apply `delta` to a full key mapping in place; empty buckets are dropped."""

    for key_type, entries in delta.items():
        bucket = key_store.setdefault(key_type, {})
        apply_key_delta(bucket, entries)
        if not bucket:
            key_store.pop(key_type, None)


def fold_key_deltas(deltas: Iterable[KeyDelta]) -> dict[str, dict[str, Any | None]]:
    """
    Coalesce ordered deltas into one.

    Later entries win. Deletions are kept as `None` so the folded delta still
    removes keys that exist in the store.
    """

    out: dict[str, dict[str, Any | None]] = {}
    for delta in deltas:
        for key_type, entries in delta.items():
            out.setdefault(key_type, {}).update(entries)
    return {k: v for k, v in out.items() if v}

from __future__ import annotations

from dataclasses import dataclass

from sessiongen.util import json as bufferjson


@dataclass(slots=True)
class _Pair:
    public: bytes
    private: bytes


def test_bytes_are_written_as_baileys_buffers() -> None:
    raw = bufferjson.dumps({"k": b"\x00\x01\xff"})
    assert raw == '{"k": {"data": "AAH/", "type": "Buffer"}}'
    assert bufferjson.loads(raw) == {"k": b"\x00\x01\xff"}


def test_snapshot_detaches_nested_values() -> None:
    src = {"me": {"id": "1@s.whatsapp.net"}, "pair": _Pair(b"p", b"s"), "tags": ("a", "b")}
    snap = bufferjson.snapshot(src)
    src["me"]["id"] = "changed"
    assert snap == {
        "me": {"id": "1@s.whatsapp.net"},
        "pair": {"public": b"p", "private": b"s"},
        "tags": ["a", "b"],
    }

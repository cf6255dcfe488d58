"""
Boundary with the external protocol client.

The client (key generation, Noise handshake, binary framing) is not part of
this package. It is reached through `ProtocolClient` and constructed by a
`ClientFactory`. Event payloads crossing the boundary are validated into the
small tagged types below before they reach the coordinator.
"""

from __future__ import annotations

import dataclasses
import importlib
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Literal, Protocol, TypeAlias

from .auth.state import AuthenticationState, Credentials
from .constants import DEFAULT_BROWSER, DEFAULT_QR_TIMEOUT_S
from .exceptions import ConfigError, ProtocolEventError

Listener = Callable[..., Awaitable[None]] | Callable[..., None]
ConnectionPhase: TypeAlias = Literal["connecting", "open", "close"]
PairingMethod: TypeAlias = Literal["qr", "pairing"]

_PHASES = ("connecting", "open", "close")


class DisconnectReason(IntEnum):
    # Status codes attached to `last_disconnect` (Baileys' `DisconnectReason`).
    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    RESTART_REQUIRED = 515


@dataclass(slots=True)
class ClientOptions:
    browser: tuple[str, str, str] = DEFAULT_BROWSER
    qr_timeout_s: float = DEFAULT_QR_TIMEOUT_S
    print_qr_in_terminal: bool = False
    sync_full_history: bool = True
    generate_high_quality_link_preview: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


class ProtocolClient(Protocol):
    def on(self, event: str, listener: Listener) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def request_pairing_code(self, phone_number: str) -> str: ...


ClientFactory = Callable[[AuthenticationState, ClientOptions], ProtocolClient]


def load_client_factory(path: str) -> ClientFactory:
    """Resolve a `package.module:attribute` import path to a client factory."""

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"client factory must look like 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"cannot import client factory module {module_name!r}: {e}") from e
    factory: Any = module
    for part in attr.split("."):
        try:
            factory = getattr(factory, part)
        except AttributeError as e:
            raise ConfigError(f"{module_name!r} has no attribute {attr!r}") from e
    if not callable(factory):
        raise ConfigError(f"client factory {path!r} is not callable")
    return factory  # type: ignore[no-any-return]


@dataclass(slots=True)
class ConnectionUpdate:
    connection: ConnectionPhase | None = None
    qr: str | None = None
    is_new_login: bool | None = None
    last_disconnect: Exception | None = None

    @property
    def status_code(self) -> int | None:
        err = self.last_disconnect
        if err is None:
            return None
        # Boom-style errors carry `output.status_code`; plain ones a `status_code`.
        for holder in (err, getattr(err, "output", None)):
            for attr in ("status_code", "statusCode"):
                v = getattr(holder, attr, None)
                if isinstance(v, int):
                    return v
        return None

    @property
    def logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


def is_logged_out(update: ConnectionUpdate) -> bool:
    """True when a `close` was caused by the account unlinking this device."""

    return update.connection == "close" and update.logged_out


@dataclass(slots=True)
class CredentialsChanged:
    # Either the full record (dataclass/mapping) or a partial update.
    update: Credentials


@dataclass(slots=True)
class KeysChanged:
    delta: dict[str, dict[str, Any | None]]


def _field(d: Mapping[str, Any], snake: str, camel: str) -> Any:
    if snake in d:
        return d[snake]
    return d.get(camel)


def parse_connection_update(payload: Any) -> ConnectionUpdate:
    if isinstance(payload, ConnectionUpdate):
        update = payload
    elif isinstance(payload, Mapping):
        last = _field(payload, "last_disconnect", "lastDisconnect")
        if isinstance(last, Mapping):
            # Baileys wraps the error: `{error, date}`.
            last = last.get("error")
        update = ConnectionUpdate(
            connection=payload.get("connection"),
            qr=payload.get("qr"),
            is_new_login=_field(payload, "is_new_login", "isNewLogin"),
            last_disconnect=last,
        )
    elif hasattr(payload, "connection") or hasattr(payload, "qr"):
        update = ConnectionUpdate(
            connection=getattr(payload, "connection", None),
            qr=getattr(payload, "qr", None),
            is_new_login=getattr(payload, "is_new_login", None),
            last_disconnect=getattr(payload, "last_disconnect", None),
        )
    else:
        raise ProtocolEventError(f"unexpected connection.update payload: {type(payload).__name__}")

    if update.connection is not None and update.connection not in _PHASES:
        raise ProtocolEventError(f"unknown connection phase: {update.connection!r}")
    if update.qr is not None and (not isinstance(update.qr, str) or not update.qr):
        raise ProtocolEventError("qr must be a non-empty string")
    if update.last_disconnect is not None and not isinstance(update.last_disconnect, Exception):
        raise ProtocolEventError("last_disconnect must be an exception")
    return update


def parse_credentials_changed(payload: Any) -> CredentialsChanged:
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return CredentialsChanged(update=dataclasses.asdict(payload))
    if isinstance(payload, Mapping):
        return CredentialsChanged(update=dict(payload))
    raise ProtocolEventError(f"unexpected creds.update payload: {type(payload).__name__}")


def parse_keys_changed(payload: Any) -> KeysChanged:
    if not isinstance(payload, Mapping):
        raise ProtocolEventError(f"unexpected keys.update payload: {type(payload).__name__}")
    delta: dict[str, dict[str, Any | None]] = {}
    for key_type, entries in payload.items():
        if not isinstance(key_type, str) or not isinstance(entries, Mapping):
            raise ProtocolEventError(f"malformed key bucket {key_type!r}")
        delta[key_type] = {str(k): v for k, v in entries.items()}
    return KeysChanged(delta=delta)

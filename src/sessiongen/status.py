from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    QR_PENDING = "qr_pending"
    PAIRING_PENDING = "pairing_pending"
    OPEN = "open"
    CLOSED = "closed"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        """An attempt in this state blocks new attempts."""

        return self in _ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.ERROR)


_ACTIVE = frozenset(
    {
        ConnectionState.CONNECTING,
        ConnectionState.QR_PENDING,
        ConnectionState.PAIRING_PENDING,
        ConnectionState.OPEN,
    }
)


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    state: ConnectionState = ConnectionState.IDLE
    method: str | None = None
    pending_qr: str | None = None
    pending_pairing_code: str | None = None
    error: str | None = None
    persist_error: str | None = None
    logged_out: bool | None = None
    account: str | None = None

    def evolve(self, **changes: Any) -> StatusSnapshot:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "method": self.method,
            "pendingQr": self.pending_qr,
            "pendingPairingCode": self.pending_pairing_code,
            "error": self.error,
            "persistError": self.persist_error,
            "loggedOut": self.logged_out,
            "account": self.account,
        }


class StatusQueryService:
    """
    Read side of the coordinator's state.

    The coordinator replaces the whole snapshot on every change, so a reader
    always sees one consistent (state, pending QR, pending code) triple.
    """

    def __init__(self) -> None:
        self._snapshot = StatusSnapshot()

    def publish(self, snapshot: StatusSnapshot) -> None:
        self._snapshot = snapshot

    def current_status(self) -> StatusSnapshot:
        return self._snapshot

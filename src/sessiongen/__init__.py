"""
sessiongen: pair a WhatsApp Web (multi-device) session over HTTP and keep
its credentials and signal keys in a durable store, so another process can
resume the session without pairing again.
"""

from __future__ import annotations

from .coordinator import ConnectionAttempt, ConnectionCoordinator
from .exceptions import SessionGenError
from .status import ConnectionState, StatusQueryService, StatusSnapshot

__all__ = [
    "ConnectionAttempt",
    "ConnectionCoordinator",
    "ConnectionState",
    "SessionGenError",
    "StatusQueryService",
    "StatusSnapshot",
]

__version__ = "0.1.0"

from __future__ import annotations

from .cache import KeyCache
from .keys import KeyDelta, apply_key_deltas, fold_key_deltas
from .state import AuthenticationState, Credentials, SignalKeyStore

__all__ = [
    "AuthenticationState",
    "Credentials",
    "KeyCache",
    "KeyDelta",
    "SignalKeyStore",
    "apply_key_deltas",
    "fold_key_deltas",
]

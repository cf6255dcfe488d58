from __future__ import annotations


class SessionGenError(Exception):
    """Base error for sessiongen."""


class ConfigError(SessionGenError):
    """Missing or invalid process configuration."""


class StoreUnavailable(SessionGenError):
    """The durable credential store could not be reached (or is closed)."""


class InvalidPhoneNumber(SessionGenError, ValueError):
    """Pairing input is not a digits-only phone number."""


class UnsupportedMethod(SessionGenError, ValueError):
    """Pairing method other than `qr` or `pairing`."""


class PairingRequestFailed(SessionGenError):
    """The protocol client refused or failed to issue a pairing code."""


class ProtocolSetupFailed(SessionGenError):
    """Constructing or connecting the protocol client failed."""


class ConflictingAttempt(SessionGenError):
    """
    A connection attempt is already in progress.

    Carries the state of the attempt that blocked the request.
    """

    def __init__(self, state: str) -> None:
        super().__init__(f"a connection attempt is already active (state={state})")
        self.state = state


class ProtocolEventError(SessionGenError):
    """An event payload from the protocol client did not match its expected shape."""

from __future__ import annotations

import logging

from .constants import MAX_PHONE_DIGITS
from .exceptions import InvalidPhoneNumber, PairingRequestFailed, SessionGenError
from .jid import phone_number_jid
from .protocol import ProtocolClient

logger = logging.getLogger(__name__)


def normalize_phone_number(raw: str | None) -> str:
    """
    Return the digits of a phone number given in international form
    without `+`, spaces or separators (e.g. `50912345678`).
    """

    digits = (raw or "").strip()
    if not digits:
        raise InvalidPhoneNumber("phone number is required for pairing")
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidPhoneNumber("phone number must contain digits only (no '+', spaces or dashes)")
    if len(digits) > MAX_PHONE_DIGITS:
        raise InvalidPhoneNumber(f"phone number is longer than {MAX_PHONE_DIGITS} digits")
    return digits


class PairingRequestHandler:
    """
    Issues the phone-number pairing code for one connection attempt.

    The server enforces a cooldown between pairing-code requests, so a
    handler only ever asks once.
    """

    def __init__(self, client: ProtocolClient) -> None:
        self._client = client
        self._issued = False

    @property
    def issued(self) -> bool:
        return self._issued

    async def issue(self, phone_number: str) -> str:
        digits = normalize_phone_number(phone_number)
        if self._issued:
            raise PairingRequestFailed("a pairing code was already requested for this attempt")
        self._issued = True

        jid = phone_number_jid(digits)
        logger.info("Requesting pairing code for %s", jid)
        try:
            code = await self._client.request_pairing_code(jid)
        except SessionGenError:
            raise
        except Exception as e:
            raise PairingRequestFailed(f"pairing code request failed: {e}") from e

        if not isinstance(code, str) or not code.strip():
            raise PairingRequestFailed("protocol client returned an empty pairing code")
        code = code.strip()
        logger.info("Pairing code issued")
        return code

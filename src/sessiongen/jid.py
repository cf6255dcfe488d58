from __future__ import annotations

from typing import Literal, TypeAlias

JidServer: TypeAlias = Literal["c.us", "s.whatsapp.net", "lid"]


def jid_encode(user: str | int | None, server: JidServer) -> str:
    u = "" if user is None else str(user)
    return f"{u}@{server}"


def phone_number_jid(digits: str) -> str:
    """User JID for a digits-only phone number (`<digits>@s.whatsapp.net`)."""

    return jid_encode(digits, "s.whatsapp.net")

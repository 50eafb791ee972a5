from __future__ import annotations

from pyaileys.wabinary import S_WHATSAPP_NET


def to_user_jid(phone: str) -> str:
    """
    Turn a phone number into a direct-message JID.

    Identifiers already carrying the `@s.whatsapp.net` suffix pass through.
    """

    if S_WHATSAPP_NET in phone:
        return phone
    return f"{phone}{S_WHATSAPP_NET}"

from __future__ import annotations

from enum import IntEnum

from pyaileys.wabinary.types import BinaryNode


class DisconnectReason(IntEnum):
    """Status codes explaining why a WhatsApp connection ended (Baileys numbering)."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


def _first_child(node: BinaryNode) -> BinaryNode | None:
    if isinstance(node.content, list):
        for c in node.content:
            if isinstance(c, BinaryNode):
                return c
    return None


def _as_status(raw: str | None) -> int | None:
    if raw and raw.isdigit():
        return int(raw)
    return None


def status_from_stream_error(node: BinaryNode) -> int:
    """
    Map a `<stream:error>` stanza to a status code.

    An explicit `code` attribute wins. Otherwise `<conflict type="device_removed">`
    means the companion was unlinked from the phone, any other `<conflict>` means
    another client took over the session, and everything else is a bad session.
    """

    code = _as_status(node.attrs.get("code"))
    if code is not None:
        return code

    reason = _first_child(node)
    if reason is not None and reason.tag == "conflict":
        if reason.attrs.get("type") == "device_removed":
            return DisconnectReason.LOGGED_OUT
        return DisconnectReason.CONNECTION_REPLACED
    return DisconnectReason.BAD_SESSION


def status_from_failure(node: BinaryNode) -> int:
    """Map a `<failure reason="...">` stanza (sent instead of `<success>`) to a status code."""

    code = _as_status(node.attrs.get("reason"))
    return code if code is not None else DisconnectReason.BAD_SESSION


def status_from_exception(exc: BaseException | None) -> int | None:
    if exc is None:
        return None
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None

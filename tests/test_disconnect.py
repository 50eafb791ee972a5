from __future__ import annotations

from pyaileys.exceptions import TransportError
from pyaileys.wabinary.types import BinaryNode

from wagateway.disconnect import (
    DisconnectReason,
    status_from_exception,
    status_from_failure,
    status_from_stream_error,
)


def _stream_error(attrs: dict[str, str], *children: BinaryNode) -> BinaryNode:
    return BinaryNode(tag="stream:error", attrs=attrs, content=list(children) or None)


def test_stream_error_explicit_code_wins() -> None:
    node = _stream_error({"code": "515"}, BinaryNode(tag="conflict", attrs={}))
    assert status_from_stream_error(node) == DisconnectReason.RESTART_REQUIRED


def test_stream_error_conflicts() -> None:
    replaced = _stream_error({}, BinaryNode(tag="conflict", attrs={"type": "replaced"}))
    removed = _stream_error({}, BinaryNode(tag="conflict", attrs={"type": "device_removed"}))

    assert status_from_stream_error(replaced) == DisconnectReason.CONNECTION_REPLACED
    assert status_from_stream_error(removed) == DisconnectReason.LOGGED_OUT


def test_stream_error_unknown_is_bad_session() -> None:
    assert status_from_stream_error(_stream_error({})) == DisconnectReason.BAD_SESSION
    assert status_from_stream_error(_stream_error({"code": "abc"})) == DisconnectReason.BAD_SESSION


def test_failure_reason() -> None:
    assert status_from_failure(BinaryNode(tag="failure", attrs={"reason": "401"})) == 401
    assert status_from_failure(BinaryNode(tag="failure", attrs={"reason": "403"})) == 403
    assert status_from_failure(BinaryNode(tag="failure", attrs={})) == DisconnectReason.BAD_SESSION


def test_status_from_exception() -> None:
    class Boom(Exception):
        status_code = 401

    assert status_from_exception(None) is None
    assert status_from_exception(TransportError("dropped")) is None
    assert status_from_exception(Boom()) == DisconnectReason.LOGGED_OUT

"""
wagateway: a small HTTP gateway in front of a WhatsApp Web (Multi-Device) session.

The protocol work is done by pyaileys; this package keeps one session alive and
exposes QR pairing, sending, status and logout over JSON.
"""

from __future__ import annotations

from .app import create_app
from .config import GatewayConfig
from .exceptions import AuthStateRemovalError, GatewayError, NotConnectedError
from .session import SessionManager, SessionState

__all__ = [
    "AuthStateRemovalError",
    "GatewayConfig",
    "GatewayError",
    "NotConnectedError",
    "SessionManager",
    "SessionState",
    "create_app",
]

__version__ = "0.1.0"

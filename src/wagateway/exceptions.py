from __future__ import annotations


class GatewayError(Exception):
    """Base error for the wagateway service."""


class NotConnectedError(GatewayError):
    """A send was attempted while no WhatsApp session is live."""

    def __init__(self, message: str = "WhatsApp not connected") -> None:
        super().__init__(message)


class AuthStateRemovalError(GatewayError):
    """
    The persisted auth-state folder could not be deleted during logout.

    The original `OSError` is chained as `__cause__`.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"failed to remove auth state at {path}: {reason}")
        self.path = path

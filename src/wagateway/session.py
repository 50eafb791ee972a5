"""
Session manager: owns the single WhatsApp connection behind the gateway.

The manager is the explicit context object shared by the connection-lifecycle
listeners and the HTTP handlers. It holds:
- the current client (session handle), or None
- the pending QR challenge, if a pairing cycle is running
- the reconnect flag, disabled while a logout wipes the auth folder

Everything runs on one event loop, so state is mutated without locks; each
mutation happens between await points.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import shutil
from collections.abc import Awaitable, Callable, Coroutine
from enum import Enum
from pathlib import Path
from typing import Any

from pyaileys import WhatsAppClient
from pyaileys.auth.creds import Contact
from pyaileys.auth.store import MultiFileAuthState
from pyaileys.socket import ConnectionUpdate
from pyaileys.util.asyncio import cancel_suppress, ensure_task
from pyaileys.util.events import Listener
from pyaileys.wabinary import S_WHATSAPP_NET, jid_normalized_user
from pyaileys.wabinary.types import BinaryNode

from .config import GatewayConfig
from .disconnect import (
    DisconnectReason,
    status_from_exception,
    status_from_failure,
    status_from_stream_error,
)
from .exceptions import AuthStateRemovalError, NotConnectedError
from .jid import to_user_jid

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Awaitable[tuple[WhatsAppClient, MultiFileAuthState]]]


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    CONNECTED = "connected"
    LOGGING_OUT = "logging_out"


class SessionManager:
    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self._client_factory: ClientFactory = client_factory or WhatsAppClient.from_auth_folder

        self.client: WhatsAppClient | None = None
        self.auth_state: MultiFileAuthState | None = None
        self.qr: str | None = None
        self.reconnect_enabled = True

        self.state = SessionState.DISCONNECTED
        self.last_disconnect: int | None = None

        # Status code reported by a stream:error/failure stanza, consumed by the next close.
        self._pending_status: int | None = None
        self._listeners: list[tuple[str, Listener]] = []
        self._timers: set[asyncio.Task[None]] = set()

    @property
    def auth_dir(self) -> Path:
        return Path(self.config.auth_dir).expanduser()

    @property
    def me(self) -> Contact | None:
        if self.client is None:
            return None
        return self.client.socket.auth.creds.me

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED and self.me is not None

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Launch `connect()` in the background."""

        self._schedule(self.connect(), name="wagateway.connect")

    async def connect(self) -> None:
        """
        Restore the auth folder and open a new connection.

        Failures are not raised: a failed attempt is treated like a closed
        connection, so the reconnect timer decides what happens next.
        """

        if self.client is not None:
            try:
                await self._release_client(self.client)
            except Exception as e:
                logger.warning("Could not close the previous connection: %s", e)

        self.state = SessionState.CONNECTING
        self._pending_status = None
        try:
            client, auth_state = await self._client_factory(str(self.auth_dir))
        except Exception as e:
            logger.warning("Could not load auth state from %s: %s", self.auth_dir, e)
            self._handle_close(status_from_exception(e))
            return

        self.client = client
        self.auth_state = auth_state
        self._attach(client, auth_state)

        try:
            await client.connect()
        except Exception as e:
            logger.warning("Connection attempt failed: %s", e)
            if client is self.client:
                self._handle_close(status_from_exception(e))

    async def logout(self) -> None:
        """
        Unlink this device, wipe the auth folder and start a fresh pairing cycle.

        Reconnects stay disabled until the folder is gone; the new cycle starts
        `relogin_delay_s` later. Safe to call without a session.
        """

        self.reconnect_enabled = False
        self.state = SessionState.LOGGING_OUT

        client = self.client
        if client is not None:
            await self._logout_client(client)
            self._detach(client)
            self.client = None
            self.auth_state = None

        self.qr = None
        await self._remove_auth_state()

        self._schedule(self._relogin_later(), name="wagateway.relogin")

    async def send_message(self, phone: str, text: str) -> str:
        """Send a text to a phone number or JID; returns the message id."""

        client = self.client
        if client is None or not self.connected:
            raise NotConnectedError()

        jid = to_user_jid(phone)
        return await client.send_text(jid, text)

    async def close(self) -> None:
        """Shut down for process exit: cancel timers and drop the connection, keep auth state."""

        self.reconnect_enabled = False
        for task in list(self._timers):
            await cancel_suppress(task)
        self._timers.clear()

        if self.client is not None:
            await self._release_client(self.client)
        self.state = SessionState.DISCONNECTED

    # -- event handling ------------------------------------------------------

    def _attach(self, client: WhatsAppClient, auth_state: MultiFileAuthState) -> None:
        async def on_connection_update(update: ConnectionUpdate) -> None:
            if client is self.client:
                self._on_connection_update(update)

        async def on_creds_update(_creds: Any) -> None:
            await auth_state.save_creds()

        async def on_stream_error(node: BinaryNode) -> None:
            if client is self.client:
                self._pending_status = status_from_stream_error(node)

        async def on_failure(node: BinaryNode) -> None:
            if client is not self.client:
                return
            self._pending_status = status_from_failure(node)
            logger.warning("Server refused the login (status=%s)", self._pending_status)
            self._schedule(client.disconnect(), name="wagateway.close_on_failure")

        listeners: list[tuple[str, Listener]] = [
            ("connection.update", on_connection_update),
            ("creds.update", on_creds_update),
            ("message.decrypted", self._on_message),
            ("cb:stream:error", on_stream_error),
            ("cb:failure", on_failure),
        ]
        for event, fn in listeners:
            client.on(event, fn)
        self._listeners = listeners

    def _detach(self, client: WhatsAppClient) -> None:
        for event, fn in self._listeners:
            client.socket.events.off(event, fn)
        self._listeners = []

    def _on_connection_update(self, update: ConnectionUpdate) -> None:
        if update.qr:
            if self.state is SessionState.CONNECTED:
                logger.debug("Ignoring QR update while the session is open")
            else:
                self.qr = update.qr
                self.state = SessionState.AWAITING_SCAN
                logger.info("QR code generated, scan it from /api/qr")

        if update.connection == "open":
            self.qr = None
            self.state = SessionState.CONNECTED
            self.last_disconnect = None
            me = self.me
            logger.info("WhatsApp connected as %s", me.id if me else "<unknown>")
        elif update.connection == "close":
            status = status_from_exception(update.last_disconnect)
            if status is None:
                status = self._pending_status
            self._pending_status = None
            self._handle_close(status)

    def _handle_close(self, status: int | None) -> None:
        self.last_disconnect = status
        if self.state is not SessionState.LOGGING_OUT:
            self.state = SessionState.DISCONNECTED

        if status == DisconnectReason.RESTART_REQUIRED and self.client is not None:
            # pyaileys reconnects on its own after a 515 stream error; the timer only
            # takes over when that restart never brings the socket back.
            logger.info("Server requested a restart, client is reconnecting")
            self.state = SessionState.CONNECTING
            if self.reconnect_enabled:
                self._schedule(
                    self._reconnect_later(unless_open=self.client), name="wagateway.reconnect"
                )
            return

        reconnect = self.reconnect_enabled and status != DisconnectReason.LOGGED_OUT
        logger.info("Connection closed (status=%s). Reconnecting: %s", status, reconnect)
        if reconnect:
            self._schedule(self._reconnect_later(), name="wagateway.reconnect")

    async def _on_message(self, ev: dict[str, Any]) -> None:
        text = ev.get("text")
        if not text:
            return
        sender = ev.get("sender_jid")
        me = self.me
        if me is not None and sender and jid_normalized_user(sender) == jid_normalized_user(me.id):
            return
        logger.info("Received message from %s in %s: %s", sender, ev.get("chat_jid"), text)

    # -- helpers -------------------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = ensure_task(coro, name=name)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)

    async def _reconnect_later(self, *, unless_open: WhatsAppClient | None = None) -> None:
        await asyncio.sleep(self.config.reconnect_delay_s)
        if unless_open is not None:
            if unless_open is not self.client or unless_open.socket.is_open:
                return
            logger.info("Restart did not reconnect, opening a new connection")
        await self.connect()

    async def _relogin_later(self) -> None:
        await asyncio.sleep(self.config.relogin_delay_s)
        self.reconnect_enabled = True
        await self.connect()

    async def _logout_client(self, client: WhatsAppClient) -> None:
        me = client.socket.auth.creds.me
        if me is not None and client.socket.is_open:
            await client.socket.send_node(
                BinaryNode(
                    tag="iq",
                    attrs={
                        "id": secrets.token_hex(8),
                        "to": S_WHATSAPP_NET,
                        "type": "set",
                        "xmlns": "md",
                    },
                    content=[
                        BinaryNode(
                            tag="remove-companion-device",
                            attrs={"jid": me.id, "reason": "user_initiated"},
                        )
                    ],
                )
            )
        await client.disconnect()

    async def _release_client(self, client: WhatsAppClient) -> None:
        self._detach(client)
        if client is self.client:
            self.client = None
            self.auth_state = None
        await client.disconnect()

    async def _remove_auth_state(self) -> None:
        path = self.auth_dir
        if not path.exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise AuthStateRemovalError(str(path), str(e)) from e
        logger.info("Removed auth state at %s", path)

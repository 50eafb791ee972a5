from __future__ import annotations

import asyncio
from typing import Any

import pytest
from pyaileys.auth.creds import Contact
from pyaileys.auth.state import AuthenticationState
from pyaileys.auth.store import MultiFileAuthState
from pyaileys.socket import ConnectionUpdate
from pyaileys.util.events import AsyncEventEmitter
from pyaileys.wabinary.types import BinaryNode

from wagateway.config import GatewayConfig
from wagateway.session import SessionManager

ME = Contact(id="628999000111:4@s.whatsapp.net", name="Gateway", lid="1234:4@lid")


class FakeSocket:
    def __init__(self, auth: AuthenticationState) -> None:
        self.auth = auth
        self.events = AsyncEventEmitter()
        self.is_open = False
        self.sent_nodes: list[BinaryNode] = []

    async def send_node(self, node: BinaryNode) -> None:
        self.sent_nodes.append(node)


class FakeClient:
    """In-memory stand-in for `pyaileys.WhatsAppClient`."""

    def __init__(self, auth_state: MultiFileAuthState) -> None:
        self.socket = FakeSocket(AuthenticationState(creds=auth_state.creds, keys=auth_state.keys))
        self.sent: list[tuple[str, str]] = []
        self.send_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.disconnect_calls = 0

    def on(self, event: str, listener: Any) -> None:
        self.socket.events.on(event, listener)

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.socket.is_open = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if not self.socket.is_open:
            return
        self.socket.is_open = False
        await self.socket.events.emit("connection.update", ConnectionUpdate(connection="close"))

    async def send_text(self, jid: str, text: str, **_kw: Any) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, text))
        return f"MSG{len(self.sent)}"

    # Server-side events

    async def emit_qr(self, qr: str) -> None:
        await self.socket.events.emit("connection.update", ConnectionUpdate(qr=qr))

    async def emit_open(self, me: Contact = ME) -> None:
        self.socket.auth.creds.me = me
        await self.socket.events.emit(
            "connection.update", ConnectionUpdate(connection="open", qr=None)
        )

    async def emit_close(self, error: Exception | None = None) -> None:
        self.socket.is_open = False
        await self.socket.events.emit(
            "connection.update", ConnectionUpdate(connection="close", last_disconnect=error)
        )

    async def emit_node(self, event: str, node: BinaryNode) -> None:
        await self.socket.events.emit(event, node)


class FakeBackend:
    """Client factory handing out `FakeClient`s over a real multi-file auth folder."""

    def __init__(self) -> None:
        self.clients: list[FakeClient] = []
        self.next_connect_error: Exception | None = None

    async def __call__(self, folder: str) -> tuple[FakeClient, MultiFileAuthState]:
        auth_state = await MultiFileAuthState.load(folder)
        client = FakeClient(auth_state)
        if self.next_connect_error is not None:
            client.connect_error = self.next_connect_error
            self.next_connect_error = None
        self.clients.append(client)
        return client, auth_state

    @property
    def latest(self) -> FakeClient:
        return self.clients[-1]


async def drain(manager: SessionManager) -> None:
    """Run pending reconnect/relogin timers to completion."""

    while pending := [t for t in manager._timers if not t.done()]:
        await asyncio.gather(*pending)


@pytest.fixture
def config(tmp_path) -> GatewayConfig:
    return GatewayConfig(
        auth_dir=str(tmp_path / "auth"), reconnect_delay_s=0.0, relogin_delay_s=0.0
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def manager(config: GatewayConfig, backend: FakeBackend) -> SessionManager:
    return SessionManager(config, client_factory=backend)

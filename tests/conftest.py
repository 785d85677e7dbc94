"""
tests/conftest.py — Fake sockets and an in-memory loopback network.

FakeServerSocket stands in for the Starlette WebSocket the relay sees.
LoopbackNetwork is a connector for ReconnectSupervisor: every "connection"
is a client socket wired straight into a MessageRouter, so real sessions can
talk to a real router without a network.
"""

import asyncio
import json

import pytest
from fastapi.websockets import WebSocketState
from websockets.protocol import State

from panel_relay.core import MessageRouter


class FakeServerSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    def close(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    def frames(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]

    def types(self) -> list[str]:
        return [f["type"] for f in self.frames()]

    def of_type(self, tag: str) -> list[dict]:
        return [f for f in self.frames() if f["type"] == tag]


class _LoopbackServerSide(FakeServerSocket):
    def __init__(self, client: "LoopbackSocket"):
        super().__init__()
        self.client = client

    async def send_text(self, data: str) -> None:
        await super().send_text(data)
        self.client.inbox.put_nowait(data)


class LoopbackSocket:
    """Client end of a loopback connection (quacks like a websockets ClientConnection)."""

    def __init__(self, network: "LoopbackNetwork"):
        self.network = network
        self.state = State.OPEN
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.server = _LoopbackServerSide(self)
        self.conn = None
        self.sent: list[str] = []

    async def send(self, data: str) -> None:
        if self.state is not State.OPEN:
            raise RuntimeError("socket closed")
        self.sent.append(data)
        await self.network.router.handle(self.conn, data)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self.inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.drop()

    def drop(self) -> None:
        """Simulate the transport going away."""
        if self.state is State.OPEN:
            self.state = State.CLOSED
            self.server.close()
            self.network.router.disconnect(self.conn)
            self.inbox.put_nowait(None)

    def sent_types(self) -> list[str]:
        return [json.loads(s)["type"] for s in self.sent]


class LoopbackNetwork:
    def __init__(self, router: MessageRouter):
        self.router = router
        self.sockets: list[LoopbackSocket] = []
        self.refuse = 0

    async def connect(self, url: str) -> LoopbackSocket:
        if self.refuse:
            self.refuse -= 1
            raise OSError("connection refused")
        sock = LoopbackSocket(self)
        sock.conn = await self.router.connect(sock.server)
        self.sockets.append(sock)
        return sock


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def router():
    return MessageRouter()


@pytest.fixture
def network(router):
    return LoopbackNetwork(router)

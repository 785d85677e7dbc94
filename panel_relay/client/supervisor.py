"""
client/supervisor.py — Socket lifecycle with fixed-delay reconnect.

    DISCONNECTED → CONNECTING → OPEN
         ↑                        │ close
         └──── wait delay ────────┘

Retries are unbounded. The delay is fixed (3 s by default); an optional
jitter adds a uniform random spread on top of it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

log = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]
OpenCallback = Callable[[Any], Awaitable[None]]
MessageCallback = Callable[[Any], Awaitable[None]]
CloseCallback = Callable[[], Awaitable[None]]

DEFAULT_RECONNECT_DELAY = 3.0


class LinkState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"


async def websocket_connector(url: str) -> Any:
    return await ws_connect(url)


class ReconnectSupervisor:
    def __init__(
        self,
        url: str,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_close: Optional[CloseCallback] = None,
        delay: float = DEFAULT_RECONNECT_DELAY,
        jitter: float = 0.0,
        connector: Optional[Connector] = None,
    ):
        self.url = url
        self.delay = delay
        self.jitter = jitter
        self.state = LinkState.DISCONNECTED
        self.socket: Optional[Any] = None
        self.attempts = 0

        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._connector = connector or websocket_connector
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """Start the connect loop. Calling it again while running is a no-op."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        socket = self.socket
        inside = task is not None and task is asyncio.current_task()
        if task and not inside:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if socket is not None:
            try:
                await socket.close()
            except Exception as e:
                log.debug(f"Close error: {e}")
        self.socket = None
        self.state = LinkState.DISCONNECTED
        if inside:
            # stopped from one of our own handlers; unwinds at its next await
            task.cancel()

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def retry_delay(self) -> float:
        if self.jitter > 0:
            return self.delay + random.uniform(0, self.jitter)
        return self.delay

    async def _run(self) -> None:
        while True:
            self.state = LinkState.CONNECTING
            self.attempts += 1
            log.info(f"Connecting to {self.url} (attempt {self.attempts})")
            try:
                socket = await self._connector(self.url)
            except Exception as e:
                log.warning(f"Connection to {self.url} failed: {e}")
                self.state = LinkState.DISCONNECTED
                await asyncio.sleep(self.retry_delay())
                continue

            self.socket = socket
            self.state = LinkState.OPEN
            self.attempts = 0
            log.info(f"Connected to {self.url}")
            try:
                await self._on_open(socket)
                async for raw in socket:
                    await self._on_message(raw)
            except ConnectionClosed:
                pass
            except Exception as e:
                log.error(f"Connection loop error: {e}")
            finally:
                self.socket = None
                self.state = LinkState.DISCONNECTED

            if self._on_close:
                try:
                    await self._on_close()
                except Exception as e:
                    log.error(f"Close handler error: {e}")

            delay = self.retry_delay()
            log.info(f"Disconnected - will reconnect in {delay:g}s")
            await asyncio.sleep(delay)

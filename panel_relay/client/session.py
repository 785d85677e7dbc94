"""
client/session.py — Ready-made main and remote client sessions.

A session wires one EventBus, one OutboundAdapter (which owns the
ReconnectSupervisor) and the role's InboundDispatcher together.

Example:
    panels = InMemoryPanels()
    main = MainSession("ws://192.168.1.20:8080/ws", panels)
    main.connect()
    await panels.create("Instrument 2")

    remote = RemoteSession("ws://192.168.1.20:8080/ws")
    remote.connect()
    await remote.toggle("panel-1700000000000")
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from panel_relay.client.inbound import InboundDispatcher, MainDispatcher, RemoteDispatcher
from panel_relay.client.outbound import MAIN_TRANSLATIONS, REMOTE_TRANSLATIONS, OutboundAdapter, Translator
from panel_relay.client.panels import InMemoryPanels, RemotePanelList, SnapshotProvider
from panel_relay.client.supervisor import DEFAULT_RECONNECT_DELAY, Connector, LinkState, ReconnectSupervisor
from panel_relay.core.events import EventBus
from panel_relay.protocol import ClientType, MessageType

log = logging.getLogger(__name__)


class _Session:
    role: ClientType
    translations: dict[str, Translator]

    def __init__(
        self,
        url: str,
        bus: Optional[EventBus] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        reconnect_jitter: float = 0.0,
        connector: Optional[Connector] = None,
    ):
        self.url = url
        self.bus = bus or EventBus()
        self.inbound: InboundDispatcher = self._make_dispatcher()
        self.outbound = OutboundAdapter(
            self.role,
            self.bus,
            self.translations,
            on_message=self._on_frame,
            reconnect_delay=reconnect_delay,
            reconnect_jitter=reconnect_jitter,
            connector=connector,
        )

    def _make_dispatcher(self) -> InboundDispatcher:
        raise NotImplementedError

    async def _on_frame(self, raw: Any) -> None:
        await self.inbound.handle(raw)

    def connect(self) -> ReconnectSupervisor:
        return self.outbound.connect(self.url)

    async def close(self) -> None:
        await self.outbound.disconnect()

    @property
    def state(self) -> LinkState:
        sup = self.outbound.supervisor
        return sup.state if sup else LinkState.DISCONNECTED

    def is_connected(self) -> bool:
        return self.outbound.is_open()


class MainSession(_Session):
    role = ClientType.MAIN
    translations = MAIN_TRANSLATIONS

    def __init__(self, url: str, panels: SnapshotProvider, bus: Optional[EventBus] = None, **kwargs: Any):
        self.panels = panels
        super().__init__(url, bus=bus, **kwargs)
        if isinstance(panels, InMemoryPanels) and panels.bus is None:
            panels.bind(self.bus)
        self.bus.on("connection:connected", self._sync_panels)

    def _make_dispatcher(self) -> MainDispatcher:
        return MainDispatcher(self.bus, self.panels, reply=self._reply)

    async def _reply(self, type_: MessageType, **fields: Any) -> bool:
        return await self.outbound.send(type_, **fields)

    async def _sync_panels(self, _data: Any = None) -> None:
        panels = [p.model_dump(exclude_none=True) for p in self.panels.panel_snapshots()]
        if await self.outbound.send(MessageType.CLIENT_SYNC_PANELS, panels=panels):
            log.info(f"Synced {len(panels)} panels to relay")


class RemoteSession(_Session):
    role = ClientType.REMOTE
    translations = REMOTE_TRANSLATIONS

    def _make_dispatcher(self) -> RemoteDispatcher:
        return RemoteDispatcher(self.bus)

    @property
    def panels(self) -> RemotePanelList:
        return self.inbound.panels

    # ── Commands ──────────────────────────────────────────────────────

    async def toggle(self, panel_id: str) -> None:
        await self.bus.emit("command:toggle", panel_id)

    async def play(self, panel_id: str) -> None:
        await self.bus.emit("command:play", panel_id)

    async def pause(self, panel_id: str) -> None:
        await self.bus.emit("command:pause", panel_id)

    async def update_code(self, panel_id: str, code: str) -> None:
        await self.bus.emit("command:updateCode", {"panelId": panel_id, "code": code})

    async def stop_all(self) -> None:
        await self.bus.emit("command:stopAll")

    async def update_all(self) -> None:
        await self.bus.emit("command:updateAll")

    async def set_master_slider(self, slider_id: Any, value: Any) -> None:
        await self.bus.emit("command:masterSlider", {"sliderId": slider_id, "value": value})

    async def set_panel_slider(self, panel_id: str, slider_id: Any, value: Any) -> None:
        await self.bus.emit("command:panelSlider", {"panelId": panel_id, "sliderId": slider_id, "value": value})

    async def resync(self) -> None:
        await self.bus.emit("command:resync")

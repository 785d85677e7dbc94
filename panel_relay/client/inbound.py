"""
client/inbound.py — Decode relay frames and republish them on the local bus.

UI-facing topics are deliberately different from the wire tags so the wire
format can evolve without touching listeners.

Main role:
  server.requestFullState → answer with full_state (+ master.sliders)
  remote commands         → panel:* / global:* / slider:* topics
  panel.update (legacy)   → panel:legacyUpdate
  façade events           → panel:api* topics

Remote role:
  full_state              → RemotePanelList.rebuild() → remote:panelsRebuilt
  main events             → incremental row updates → remote:* topics
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from panel_relay.client.panels import RemotePanelList, SnapshotProvider
from panel_relay.core.events import EventBus
from panel_relay.protocol import MalformedFrame, Message, MessageType, PanelSnapshot, decode_frame, now_ms, parse_message
from panel_relay.protocol.messages import (
    ErrorFrame,
    FullState,
    GlobalCommand,
    LegacyPanelUpdate,
    MasterSliderChange,
    MasterSliders,
    MasterSliderValue,
    MetronomeStep,
    PanelCommand,
    PanelCreated,
    PanelDeleted,
    PanelRenamed,
    PanelSliderChange,
    PanelSliders,
    PanelStateChanged,
    PanelUpdated,
    PlaybackChanged,
    RequestFullState,
    ServerHello,
    StateUpdate,
    UpdateCode,
)

log = logging.getLogger(__name__)

Reply = Callable[..., Awaitable[bool]]


class InboundDispatcher:
    def __init__(self, bus: EventBus):
        self.bus = bus
        self.client_id: str | None = None

    async def handle(self, raw: str | bytes) -> None:
        """Entry point for every frame received. Never raises."""
        try:
            message = parse_message(decode_frame(raw))
        except MalformedFrame as e:
            log.warning(f"Dropped malformed frame: {e}")
            return
        try:
            await self.dispatch(message)
        except Exception as e:
            log.error(f"Error handling '{message.type}': {e}")

    async def dispatch(self, message: Message) -> None:
        match message:
            case ServerHello(client_id=client_id):
                self.client_id = client_id
                log.info(f"Server hello: client id {client_id}")
                await self.bus.emit("websocket:hello", {"clientId": client_id})
            case ErrorFrame(message=text):
                log.warning(f"Relay reported an error: {text}")
                await self.bus.emit("websocket:error", {"message": text})
            case _:
                if not await self._dispatch(message):
                    log.warning(f"Unknown message type: {message.type}")

    async def _dispatch(self, message: Message) -> bool:
        return False


class MainDispatcher(InboundDispatcher):
    def __init__(self, bus: EventBus, panels: SnapshotProvider, reply: Reply):
        super().__init__(bus)
        self.panels = panels
        self._reply = reply

    async def answer_full_state(self, target_client_id: str | None = None) -> bool:
        snapshots = [
            p if isinstance(p, PanelSnapshot) else PanelSnapshot.model_validate(p)
            for p in self.panels.panel_snapshots()
        ]
        fields: dict[str, Any] = {
            "panels": [s.model_dump(exclude_none=True) for s in snapshots],
            "timestamp": now_ms(),
        }
        if target_client_id:
            fields["targetClientId"] = target_client_id
        sent = await self._reply(MessageType.FULL_STATE, **fields)
        log.info(f"Sent full_state with {len(snapshots)} panel(s)" if sent else "Could not send full_state (not connected)")

        sliders = self.panels.master_sliders()
        if sent and sliders:
            await self._reply(MessageType.MASTER_SLIDERS, sliders=sliders)
            log.info(f"Sent master sliders: {len(sliders)} slider(s)")
        return sent

    async def _dispatch(self, message: Message) -> bool:
        emit = self.bus.emit
        match message:
            case RequestFullState(target_client_id=target):
                log.info("Server requested full_state")
                await emit("websocket:requestState", {"targetClientId": target})
                await self.answer_full_state(target)
            case PanelCommand(type="panel.toggle", panel=panel) if panel:
                await emit("panel:toggle", panel)
            case PanelCommand(type="panel.play", panel=panel) if panel:
                await emit("panel:remotePlay", panel)
            case PanelCommand(type="panel.pause", panel=panel) if panel:
                await emit("panel:remotePause", panel)
            case PanelCommand():
                log.warning(f"'{message.type}' without a panel id ignored")
            case UpdateCode(panel_id=panel_id, code=code) if panel_id:
                await emit("panel:updateCode", {"panelId": panel_id, "code": code})
            case LegacyPanelUpdate(panel=panel, data=data) if panel and data.get("code"):
                await emit("panel:legacyUpdate", {"panel": panel, "code": data["code"]})
            case LegacyPanelUpdate():
                log.debug("Legacy panel.update without panel or code ignored")
            case GlobalCommand(type="global.stopAll"):
                await emit("global:stopAll")
            case GlobalCommand(type="global.updateAll"):
                await emit("global:updateAll")
            case MasterSliderChange(slider_id=slider_id, value=value):
                await emit("slider:masterRemoteChange", {"sliderId": slider_id, "value": value})
            case PanelSliderChange(panel_id=panel_id, slider_id=slider_id, value=value):
                await emit("slider:panelRemoteChange", {"panelId": panel_id, "sliderId": slider_id, "value": value})
            case PanelCreated() if message.key:
                await emit("panel:apiCreated", {
                    "panelId": message.key,
                    "title": message.title,
                    "code": message.code,
                    "position": getattr(message, "position", None),
                    "size": getattr(message, "size", None),
                })
            case PanelDeleted() if message.key:
                await emit("panel:apiDeleted", {"panelId": message.key})
            case PanelUpdated(panel_id=panel_id, code=code, auto_play=auto_play):
                await emit("panel:apiUpdated", {"panelId": panel_id, "code": code, "autoPlay": auto_play})
            case PlaybackChanged(panel_id=panel_id, playing=playing):
                await emit("panel:apiPlaybackChanged", {"panelId": panel_id, "playing": playing})
            case FullState():
                log.debug("Ignoring full_state (intended for remote clients)")
            case _:
                return False
        return True


class RemoteDispatcher(InboundDispatcher):
    def __init__(self, bus: EventBus, panels: RemotePanelList | None = None):
        super().__init__(bus)
        self.panels = panels or RemotePanelList()
        self.last_snapshot_at: int | None = None

    async def _dispatch(self, message: Message) -> bool:
        emit = self.bus.emit
        panels = self.panels
        match message:
            case FullState(panels=snapshots, timestamp=ts):
                counts = panels.rebuild(snapshots)
                self.last_snapshot_at = ts
                log.info(
                    f"full_state applied: {len(panels)} panel(s) "
                    f"(+{counts['created']} ~{counts['updated']} -{counts['removed']})"
                )
                await emit("remote:panelsRebuilt", panels.rows())
            case PanelCreated() if message.key:
                row = panels.add(message.key, message.title, message.code)
                await emit("remote:panelAdded", row)
            case PanelDeleted() if message.key:
                if panels.remove(message.key):
                    await emit("remote:panelRemoved", message.key)
            case PanelRenamed(id=panel_id, new_title=title):
                if panels.rename(panel_id, title):
                    await emit("remote:panelRenamed", panels.get(panel_id))
            case PanelStateChanged(panel=panel_id, playing=playing):
                if panels.set_playing(panel_id, playing):
                    await emit("remote:panelState", panels.get(panel_id))
            case PlaybackChanged(panel_id=panel_id, playing=playing):
                if panels.set_playing(panel_id, playing):
                    await emit("remote:panelState", panels.get(panel_id))
            case PanelSliders(panel_id=panel_id, sliders=sliders) if sliders is not None:
                if panels.set_sliders(panel_id, sliders):
                    await emit("remote:panelSliders", panels.get(panel_id))
            case PanelSliders(panel_id=panel_id, slider_id=slider_id, value=value) if slider_id is not None:
                if panels.set_slider_value(panel_id, slider_id, value):
                    await emit("remote:panelSliderValue", {"panelId": panel_id, "sliderId": slider_id, "value": value})
            case MasterSliders(sliders=sliders):
                panels.master_sliders = list(sliders)
                panels.master_values = {}
                await emit("remote:masterSliders", panels.master_sliders)
            case MasterSliderValue(slider_id=slider_id, value=value):
                panels.master_values[str(slider_id)] = value
                await emit("remote:masterSliderValue", {"sliderId": slider_id, "value": value})
            case MetronomeStep(step=step):
                await emit("remote:metronome", step)
            case StateUpdate():
                await emit("remote:stateUpdate", message.model_dump())
            case PanelUpdated(panel_id=panel_id, code=code):
                row = panels.get(panel_id)
                if row is not None and code is not None:
                    row.code = code
                    await emit("remote:panelCode", row)
            case _:
                return False
        return True

"""
client/outbound.py — Registration, domain-event → frame translation, send().

The translation tables below are the only place where the domain vocabulary
on the local bus ("panel:created", "command:toggle", ...) is mapped to wire
tags. Subscriptions are installed on the first open and never again, so a
reconnect doesn't duplicate outgoing frames.

send() never raises and never buffers: while the socket is not open a
message is discarded and False is returned. Stale intents are never
replayed after a reconnect.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from websockets.protocol import State

from panel_relay.client.supervisor import Connector, ReconnectSupervisor, DEFAULT_RECONNECT_DELAY
from panel_relay.core.events import EventBus
from panel_relay.protocol import ClientType, MessageType, encode_frame

log = logging.getLogger(__name__)

Frame = tuple[MessageType, dict[str, Any]]
Translator = Callable[[Any], Optional[Frame]]


# ──────────────────────────────────────────────────────────────────────────────
# Main → relay
# ──────────────────────────────────────────────────────────────────────────────

def _panel_created(d: dict) -> Frame:
    return MessageType.PANEL_CREATED, {"id": d["id"], "title": d.get("title", ""), "code": d.get("code", "")}


def _panel_deleted(panel_id: str) -> Frame:
    return MessageType.PANEL_DELETED, {"panel": panel_id}


def _panel_renamed(d: dict) -> Frame:
    return MessageType.PANEL_RENAMED, {"id": d["id"], "newTitle": d["title"]}


def _playing_changed(d: dict) -> Frame:
    return MessageType.PANEL_STATE_CHANGED, {"panel": d["panelId"], "playing": bool(d["playing"])}


def _slider_changed(d: dict) -> Frame:
    return MessageType.PANEL_SLIDERS, {"panelId": d["panelId"], "sliderId": d["sliderId"], "value": d["value"]}


def _sliders_rendered(d: dict) -> Frame:
    return MessageType.PANEL_SLIDERS, {"panelId": d["panelId"], "sliders": d["sliders"]}


def _master_sliders(sliders: list) -> Frame:
    return MessageType.MASTER_SLIDERS, {"sliders": sliders}


def _master_slider_value(d: dict) -> Frame:
    return MessageType.MASTER_SLIDER_VALUE, {"sliderId": d["sliderId"], "value": d["value"]}


def _metronome_step(step: int) -> Frame:
    return MessageType.METRONOME_STEP, {"step": step}


def _state_update(d: dict) -> Frame:
    return MessageType.STATE_UPDATE, dict(d)


MAIN_TRANSLATIONS: dict[str, Translator] = {
    "panel:created": _panel_created,
    "panel:deleted": _panel_deleted,
    "panel:renamed": _panel_renamed,
    "panel:playingChanged": _playing_changed,
    "slider:changed": _slider_changed,
    "sliders:rendered": _sliders_rendered,
    "master:slidersRendered": _master_sliders,
    "master:sliderValue": _master_slider_value,
    "metronome:step": _metronome_step,
    "state:update": _state_update,
}


# ──────────────────────────────────────────────────────────────────────────────
# Remote → relay
# ──────────────────────────────────────────────────────────────────────────────

def _panel_command(tag: MessageType) -> Translator:
    return lambda panel_id: (tag, {"panel": panel_id})


def _update_code(d: dict) -> Frame:
    return MessageType.PANEL_UPDATE_CODE, {"panelId": d["panelId"], "code": d["code"]}


def _master_slider_change(d: dict) -> Frame:
    return MessageType.MASTER_SLIDER_CHANGE, {"sliderId": d["sliderId"], "value": d["value"]}


def _panel_slider_change(d: dict) -> Frame:
    return MessageType.PANEL_SLIDER_CHANGE, {"panelId": d["panelId"], "sliderId": d["sliderId"], "value": d["value"]}


REMOTE_TRANSLATIONS: dict[str, Translator] = {
    "command:toggle": _panel_command(MessageType.PANEL_TOGGLE),
    "command:play": _panel_command(MessageType.PANEL_PLAY),
    "command:pause": _panel_command(MessageType.PANEL_PAUSE),
    "command:updateCode": _update_code,
    "command:stopAll": lambda _: (MessageType.STOP_ALL, {}),
    "command:updateAll": lambda _: (MessageType.UPDATE_ALL, {}),
    "command:masterSlider": _master_slider_change,
    "command:panelSlider": _panel_slider_change,
    "command:resync": lambda _: (MessageType.REQUEST_FULL_STATE, {}),
}


# ──────────────────────────────────────────────────────────────────────────────
# Adapter
# ──────────────────────────────────────────────────────────────────────────────

class OutboundAdapter:
    def __init__(
        self,
        role: ClientType,
        bus: EventBus,
        translations: dict[str, Translator],
        on_message: Callable[[Any], Awaitable[None]],
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        reconnect_jitter: float = 0.0,
        connector: Optional[Connector] = None,
    ):
        self.role = role
        self.bus = bus
        self.translations = translations
        self.reconnect_delay = reconnect_delay
        self.reconnect_jitter = reconnect_jitter

        self._on_message = on_message
        self._connector = connector
        self._socket: Optional[Any] = None
        self._subscribed = False
        self.supervisor: Optional[ReconnectSupervisor] = None

    # ── Connection ────────────────────────────────────────────────────

    def connect(self, url: str) -> ReconnectSupervisor:
        """Start the supervised connection. Repeated calls reuse the same one."""
        if self.supervisor is not None and self.supervisor.is_running():
            if url != self.supervisor.url:
                log.warning(f"Already connected to {self.supervisor.url}; ignoring {url}")
            return self.supervisor
        self.supervisor = ReconnectSupervisor(
            url,
            on_open=self._handle_open,
            on_message=self._on_message,
            on_close=self._handle_close,
            delay=self.reconnect_delay,
            jitter=self.reconnect_jitter,
            connector=self._connector,
        )
        self.supervisor.start()
        return self.supervisor

    async def disconnect(self) -> None:
        if self.supervisor:
            await self.supervisor.stop()
        self._socket = None

    def is_open(self) -> bool:
        return self._socket is not None and getattr(self._socket, "state", None) is State.OPEN

    async def _handle_open(self, socket: Any) -> None:
        self._socket = socket
        await self.send(MessageType.CLIENT_REGISTER, clientType=self.role.value)
        if not self._subscribed:
            self._subscribe()
            self._subscribed = True
        await self.bus.emit("connection:connected", {"url": self.supervisor.url if self.supervisor else None})

    async def _handle_close(self) -> None:
        self._socket = None
        await self.bus.emit("connection:disconnected")

    # ── Sending ───────────────────────────────────────────────────────

    async def send(self, type_: MessageType | str, **fields: Any) -> bool:
        tag = type_.value if isinstance(type_, MessageType) else type_
        if not self.is_open():
            log.debug(f"Not connected; dropped '{tag}'")
            return False
        try:
            await self._socket.send(encode_frame(tag, **fields))
        except Exception as e:
            log.debug(f"Send of '{tag}' failed: {e}")
            return False
        if tag != MessageType.METRONOME_STEP.value or fields.get("step") == 0:
            log.debug(f"Sent '{tag}'")
        return True

    def _subscribe(self) -> None:
        for topic, translate in self.translations.items():
            self.bus.on(topic, self._forwarder(topic, translate))
        log.info(f"Outgoing listeners installed for {len(self.translations)} topics ({self.role.value})")

    def _forwarder(self, topic: str, translate: Translator) -> Callable[[Any], Awaitable[None]]:
        async def forward(data: Any) -> None:
            try:
                frame = translate(data)
            except (KeyError, TypeError) as e:
                log.warning(f"Cannot translate '{topic}' event {data!r}: {e}")
                return
            if frame is not None:
                tag, fields = frame
                await self.send(tag, **fields)
        return forward

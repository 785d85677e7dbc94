"""
protocol/messages.py — Wire vocabulary shared by the relay and both client roles.

Every frame is one JSON object with its fields flattened next to the tag:

    {"type": "panel.toggle", "panel": "panel-1700000000000"}

Tag groups:
  REMOTE_COMMANDS  remote → main   (commands)
  MAIN_EVENTS      main   → remote (authoritative events, incl. full_state)
  CONTROL_TAGS     relay control plane (register, hello, requestFullState, ...)
  FACADE_EVENTS    REST façade → every socket
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class ProtocolError(Exception):
    pass


class MalformedFrame(ProtocolError):
    """Raised when a frame cannot be decoded into a tagged object."""


class MessageType(str, Enum):
    # Remote → Main
    PANEL_TOGGLE = "panel.toggle"
    PANEL_PLAY = "panel.play"
    PANEL_PAUSE = "panel.pause"
    PANEL_UPDATE_CODE = "panel.updateCode"
    STOP_ALL = "global.stopAll"
    UPDATE_ALL = "global.updateAll"
    MASTER_SLIDER_CHANGE = "master.sliderChange"
    PANEL_SLIDER_CHANGE = "panel.sliderChange"
    PANEL_UPDATE_LEGACY = "panel.update"

    # Main → Remote
    PANEL_CREATED = "panel_created"
    PANEL_DELETED = "panel_deleted"
    PANEL_RENAMED = "panel_renamed"
    PANEL_STATE_CHANGED = "panel_state_changed"
    PANEL_SLIDERS = "panel_sliders"
    PANEL_SLIDERS_LEGACY = "panel.sliders"
    PANEL_SLIDER_VALUE = "panel.sliderValue"
    MASTER_SLIDERS = "master.sliders"
    MASTER_SLIDER_VALUE = "master.sliderValue"
    FULL_STATE = "full_state"
    STATE_UPDATE = "state.update"
    METRONOME_STEP = "metronome.step"

    # Control plane
    CLIENT_REGISTER = "client.register"
    SERVER_HELLO = "server.hello"
    REQUEST_FULL_STATE = "server.requestFullState"
    CLIENT_SYNC_PANELS = "client.syncPanels"
    ERROR = "error"

    # REST façade → all
    PANEL_UPDATED = "panel_updated"
    PLAYBACK_CHANGED = "playback_changed"


class ClientType(str, Enum):
    MAIN = "main"
    REMOTE = "remote"


class Audience(str, Enum):
    MAIN = "main"
    REMOTE = "remote"
    CONTROL = "control"


REMOTE_COMMANDS = frozenset({
    MessageType.PANEL_TOGGLE,
    MessageType.PANEL_PLAY,
    MessageType.PANEL_PAUSE,
    MessageType.PANEL_UPDATE_CODE,
    MessageType.STOP_ALL,
    MessageType.UPDATE_ALL,
    MessageType.MASTER_SLIDER_CHANGE,
    MessageType.PANEL_SLIDER_CHANGE,
    MessageType.PANEL_UPDATE_LEGACY,
})

MAIN_EVENTS = frozenset({
    MessageType.PANEL_CREATED,
    MessageType.PANEL_DELETED,
    MessageType.PANEL_RENAMED,
    MessageType.PANEL_STATE_CHANGED,
    MessageType.PANEL_SLIDERS,
    MessageType.PANEL_SLIDERS_LEGACY,
    MessageType.PANEL_SLIDER_VALUE,
    MessageType.MASTER_SLIDERS,
    MessageType.MASTER_SLIDER_VALUE,
    MessageType.FULL_STATE,
    MessageType.STATE_UPDATE,
    MessageType.METRONOME_STEP,
})

CONTROL_TAGS = frozenset({
    MessageType.CLIENT_REGISTER,
    MessageType.SERVER_HELLO,
    MessageType.REQUEST_FULL_STATE,
    MessageType.CLIENT_SYNC_PANELS,
    MessageType.ERROR,
})

FACADE_EVENTS = frozenset({
    MessageType.PANEL_UPDATED,
    MessageType.PLAYBACK_CHANGED,
})

_TAGS = {t.value: t for t in MessageType}


def message_type(tag: str) -> Optional[MessageType]:
    """Look up a wire tag; None for tags this protocol doesn't know."""
    return _TAGS.get(tag)


def classify(tag: str) -> Optional[Audience]:
    """Audience a frame with this tag is routed to. None means unroutable."""
    mt = message_type(tag)
    if mt is None:
        return None
    match mt:
        case _ if mt in REMOTE_COMMANDS:
            return Audience.MAIN
        case _ if mt in MAIN_EVENTS:
            return Audience.REMOTE
        case _ if mt in CONTROL_TAGS:
            return Audience.CONTROL
        case _:
            # façade events only ever originate inside the relay
            return None


def now_ms() -> int:
    return int(time.time() * 1000)


# ──────────────────────────────────────────────────────────────────────────────
# Codec
# ──────────────────────────────────────────────────────────────────────────────

def encode_frame(type_: str | MessageType, **fields: Any) -> str:
    tag = type_.value if isinstance(type_, MessageType) else type_
    return json.dumps({"type": tag, **fields})


def decode_frame(raw: str | bytes) -> dict:
    """
    Decode one frame. Raises MalformedFrame for invalid JSON, a non-object
    payload, or an object without a string "type".
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise MalformedFrame("Invalid JSON") from e
    if not isinstance(data, dict):
        raise MalformedFrame("Frame must be a JSON object")
    if not isinstance(data.get("type"), str):
        raise MalformedFrame("Frame is missing a string 'type'")
    return data


# ──────────────────────────────────────────────────────────────────────────────
# Typed variants
# ──────────────────────────────────────────────────────────────────────────────

class _Frame(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class PanelSnapshot(_Frame):
    id: str
    title: str = ""
    code: str = ""
    playing: bool = False
    stale: bool = False
    sliders: Optional[list[Any]] = None


class ClientRegister(_Frame):
    type: Literal["client.register"]
    client_type: Optional[str] = Field(None, alias="clientType")


class ServerHello(_Frame):
    type: Literal["server.hello"]
    client_id: str = Field(alias="clientId")
    timestamp: int


class RequestFullState(_Frame):
    type: Literal["server.requestFullState"]
    target_client_id: Optional[str] = Field(None, alias="targetClientId")


class SyncPanels(_Frame):
    type: Literal["client.syncPanels"]
    panels: list[dict[str, Any]]


class ErrorFrame(_Frame):
    type: Literal["error"]
    message: str = ""


class PanelCommand(_Frame):
    type: Literal["panel.toggle", "panel.play", "panel.pause"]
    panel: Optional[str] = None


class UpdateCode(_Frame):
    type: Literal["panel.updateCode"]
    panel_id: Optional[str] = Field(None, alias="panelId")
    code: str = ""


class LegacyPanelUpdate(_Frame):
    type: Literal["panel.update"]
    panel: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class GlobalCommand(_Frame):
    type: Literal["global.stopAll", "global.updateAll"]


class MasterSliderChange(_Frame):
    type: Literal["master.sliderChange"]
    slider_id: Any = Field(alias="sliderId")
    value: Any


class PanelSliderChange(_Frame):
    type: Literal["panel.sliderChange"]
    panel_id: str = Field(alias="panelId")
    slider_id: Any = Field(alias="sliderId")
    value: Any


class PanelCreated(_Frame):
    type: Literal["panel_created"]
    id: Optional[str] = None
    panel_id: Optional[str] = Field(None, alias="panelId")
    title: Optional[str] = None
    code: str = ""

    @property
    def key(self) -> Optional[str]:
        return self.id or self.panel_id


class PanelDeleted(_Frame):
    type: Literal["panel_deleted"]
    panel: Optional[str] = None
    panel_id: Optional[str] = Field(None, alias="panelId")

    @property
    def key(self) -> Optional[str]:
        return self.panel or self.panel_id


class PanelRenamed(_Frame):
    type: Literal["panel_renamed"]
    id: str
    new_title: str = Field(alias="newTitle")


class PanelStateChanged(_Frame):
    type: Literal["panel_state_changed"]
    panel: str
    playing: bool


class PanelSliders(_Frame):
    type: Literal["panel_sliders", "panel.sliders", "panel.sliderValue"]
    panel_id: str = Field(alias="panelId")
    sliders: Optional[list[Any]] = None
    slider_id: Any = Field(None, alias="sliderId")
    value: Any = None


class MasterSliders(_Frame):
    type: Literal["master.sliders"]
    sliders: list[Any] = Field(default_factory=list)


class MasterSliderValue(_Frame):
    type: Literal["master.sliderValue"]
    slider_id: Any = Field(alias="sliderId")
    value: Any


class FullState(_Frame):
    type: Literal["full_state"]
    panels: list[PanelSnapshot] = Field(default_factory=list)
    timestamp: Optional[int] = None


class StateUpdate(_Frame):
    type: Literal["state.update"]


class MetronomeStep(_Frame):
    type: Literal["metronome.step"]
    step: int = 0


class PanelUpdated(_Frame):
    type: Literal["panel_updated"]
    panel_id: str = Field(alias="panelId")
    code: Optional[str] = None
    auto_play: bool = Field(False, alias="autoPlay")


class PlaybackChanged(_Frame):
    type: Literal["playback_changed"]
    panel_id: str = Field(alias="panelId")
    playing: bool


class UnknownMessage(_Frame):
    type: str


KnownMessage = Annotated[
    Union[
        ClientRegister, ServerHello, RequestFullState, SyncPanels, ErrorFrame,
        PanelCommand, UpdateCode, LegacyPanelUpdate, GlobalCommand, MasterSliderChange, PanelSliderChange,
        PanelCreated, PanelDeleted, PanelRenamed, PanelStateChanged, PanelSliders,
        MasterSliders, MasterSliderValue, FullState, StateUpdate, MetronomeStep,
        PanelUpdated, PlaybackChanged,
    ],
    Field(discriminator="type"),
]

Message = Union[KnownMessage, UnknownMessage]

_known_adapter: TypeAdapter = TypeAdapter(KnownMessage)


def parse_message(data: dict) -> Message:
    """
    Parse a decoded frame into its typed variant.

    Unknown tags come back as UnknownMessage; a known tag whose fields don't
    validate raises MalformedFrame.
    """
    if message_type(data.get("type", "")) is None:
        return UnknownMessage.model_validate(data)
    try:
        return _known_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedFrame(f"Invalid '{data.get('type')}' frame: {e.error_count()} field error(s)") from e

"""protocol — Wire tags, frame codec and typed message variants."""
from .messages import (
    CONTROL_TAGS,
    FACADE_EVENTS,
    MAIN_EVENTS,
    REMOTE_COMMANDS,
    Audience,
    ClientType,
    MalformedFrame,
    Message,
    MessageType,
    PanelSnapshot,
    ProtocolError,
    UnknownMessage,
    classify,
    decode_frame,
    encode_frame,
    message_type,
    now_ms,
    parse_message,
)

__all__ = [
    "CONTROL_TAGS", "FACADE_EVENTS", "MAIN_EVENTS", "REMOTE_COMMANDS",
    "Audience", "ClientType", "MalformedFrame", "Message", "MessageType",
    "PanelSnapshot", "ProtocolError", "UnknownMessage", "classify",
    "decode_frame", "encode_frame", "message_type", "now_ms", "parse_message",
]

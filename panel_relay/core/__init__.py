"""core — Role registry, message router, local event bus."""
from .events import EventBus
from .facade import MASTER_PANEL_ID, PanelNotFound, PanelTable, ProtectedPanel
from .registry import Connection, Role, RoleRegistry, socket_is_open
from .router import MessageRouter, RouteOutcome

__all__ = [
    "EventBus", "MASTER_PANEL_ID", "PanelNotFound", "PanelTable", "ProtectedPanel",
    "Connection", "Role", "RoleRegistry", "socket_is_open", "MessageRouter", "RouteOutcome",
]

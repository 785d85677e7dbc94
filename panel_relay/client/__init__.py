"""client — Main and remote sides of the relay protocol."""
from .inbound import InboundDispatcher, MainDispatcher, RemoteDispatcher
from .outbound import MAIN_TRANSLATIONS, REMOTE_TRANSLATIONS, OutboundAdapter
from .panels import InMemoryPanels, PanelRow, RemotePanelList, SnapshotProvider
from .session import MainSession, RemoteSession
from .supervisor import LinkState, ReconnectSupervisor

__all__ = [
    "InboundDispatcher", "MainDispatcher", "RemoteDispatcher",
    "MAIN_TRANSLATIONS", "REMOTE_TRANSLATIONS", "OutboundAdapter",
    "InMemoryPanels", "PanelRow", "RemotePanelList", "SnapshotProvider",
    "MainSession", "RemoteSession", "LinkState", "ReconnectSupervisor",
]

"""
core/registry.py — Per-socket Connection records and role queries.

The registry is owned by one MessageRouter and is only touched from the
relay's connect / message / close handlers, all of which run on a single
event loop.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional

from fastapi.websockets import WebSocketState

log = logging.getLogger(__name__)


class Role(str, Enum):
    UNKNOWN = "unknown"
    MAIN = "main"
    REMOTE = "remote"


def socket_is_open(socket: Any) -> bool:
    """Ready-state check done before every send."""
    return (
        getattr(socket, "client_state", None) == WebSocketState.CONNECTED
        and getattr(socket, "application_state", None) == WebSocketState.CONNECTED
    )


@dataclass(eq=False)
class Connection:
    id: str
    socket: Any = field(repr=False)
    role: Role = Role.UNKNOWN
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def assign_role(self, role: Role) -> bool:
        """Set the role once. Returns False if a role was already assigned."""
        if self.role is not Role.UNKNOWN or role is Role.UNKNOWN:
            return False
        self.role = role
        return True

    def is_open(self) -> bool:
        return socket_is_open(self.socket)


class RoleRegistry:
    def __init__(self):
        self._connections: dict[str, Connection] = {}

    def add(self, socket: Any) -> Connection:
        client_id = uuid.uuid4().hex[:8]
        while client_id in self._connections:
            client_id = uuid.uuid4().hex[:8]
        conn = Connection(id=client_id, socket=socket)
        self._connections[client_id] = conn
        return conn

    def remove(self, client_id: str) -> Optional[Connection]:
        return self._connections.pop(client_id, None)

    def get(self, client_id: str) -> Optional[Connection]:
        return self._connections.get(client_id)

    def with_role(self, role: Role) -> list[Connection]:
        return [c for c in self._connections.values() if c.role is role]

    def counts(self) -> dict[str, int]:
        counts = {r.value: 0 for r in Role}
        for conn in self._connections.values():
            counts[conn.role.value] += 1
        counts["total"] = len(self._connections)
        return counts

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._connections

"""
core/router.py — Role-aware message relay between main and remote sockets.

The relay never keeps a snapshot of the panels. Whenever a socket registers
as remote, every main socket is asked for a fresh full_state and the answer
is fanned out to the remotes.

Routing:
  client.register          → set role (write-once); remote → requestFullState to mains
  client.syncPanels        → replace the façade panel table
  server.requestFullState  → (from a remote) ask mains to resync that remote
  remote commands          → every MAIN socket
  main events              → every REMOTE socket (only accepted from MAIN)
  unknown tag              → every MAIN socket + warning
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Optional

from panel_relay.core.facade import PanelTable
from panel_relay.core.registry import Connection, Role, RoleRegistry
from panel_relay.protocol import (
    Audience,
    ClientType,
    MalformedFrame,
    MessageType,
    classify,
    decode_frame,
    encode_frame,
    message_type,
    now_ms,
)

log = logging.getLogger(__name__)


class RouteOutcome(str, Enum):
    DELIVERED = "delivered"
    REGISTERED = "registered"
    SYNCED = "synced"
    NO_AUTHORITY = "no_authority"
    UNROUTABLE = "unroutable"
    REJECTED = "rejected"
    MALFORMED = "malformed"
    FAILED = "failed"


class MessageRouter:
    def __init__(self, registry: Optional[RoleRegistry] = None, panels: Optional[PanelTable] = None):
        self.registry = registry or RoleRegistry()
        self.panels = panels or PanelTable()

    # ── Socket lifecycle ──────────────────────────────────────────────

    async def connect(self, socket: Any) -> Connection:
        conn = self.registry.add(socket)
        log.info(f"Client {conn.id} connected ({len(self.registry)} total)")
        await self._send(conn, encode_frame(MessageType.SERVER_HELLO, clientId=conn.id, timestamp=now_ms()))
        return conn

    def disconnect(self, conn: Connection) -> None:
        if self.registry.remove(conn.id) is not None:
            log.info(f"Client {conn.id} ({conn.role.value}) disconnected ({len(self.registry)} total)")

    # ── Inbound frames ────────────────────────────────────────────────

    async def handle(self, conn: Connection, raw: str | bytes) -> RouteOutcome:
        """Route one inbound frame. Never raises."""
        try:
            data = decode_frame(raw)
        except MalformedFrame as e:
            log.warning(f"Malformed frame from {conn.id}: {e}")
            await self._send(conn, encode_frame(MessageType.ERROR, message=str(e)))
            return RouteOutcome.MALFORMED

        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            return await self._route(conn, data, text)
        except Exception as e:
            log.error(f"Error routing '{data.get('type')}' from {conn.id}: {e}")
            await self._send(conn, encode_frame(MessageType.ERROR, message=str(e)))
            return RouteOutcome.FAILED

    async def _route(self, conn: Connection, data: dict, text: str) -> RouteOutcome:
        tag = data["type"]
        mt = message_type(tag)

        if tag != MessageType.METRONOME_STEP.value or data.get("step") == 0:
            log.debug(f"handle type='{tag}' from {conn.id}")

        match classify(tag):
            case Audience.CONTROL:
                return await self._control(conn, mt, data)
            case Audience.MAIN:
                log.info(f"Command {tag} from {conn.role.value} {conn.id}")
                return await self._to_mains(text, exclude=conn)
            case Audience.REMOTE:
                if conn.role is not Role.MAIN:
                    log.warning(f"Rejected '{tag}' from non-main client {conn.id} ({conn.role.value})")
                    return RouteOutcome.REJECTED
                sent = await self.broadcast_raw(text, role=Role.REMOTE, exclude=conn)
                if tag == MessageType.METRONOME_STEP.value:
                    if data.get("step") == 0:
                        log.info(f"metronome step 0 → {sent} remote(s)")
                else:
                    log.info(f"{tag} from main {conn.id} → {sent} remote(s)")
                return RouteOutcome.DELIVERED
            case None if mt is None:
                log.warning(f"Unknown message type '{tag}' from {conn.id}; forwarding to main")
                outcome = await self._to_mains(text, exclude=conn)
                return RouteOutcome.UNROUTABLE if outcome is RouteOutcome.DELIVERED else outcome
            case _:
                log.warning(f"'{tag}' is relay-originated only; dropped frame from {conn.id}")
                return RouteOutcome.REJECTED

    async def _control(self, conn: Connection, mt: MessageType, data: dict) -> RouteOutcome:
        match mt:
            case MessageType.CLIENT_REGISTER:
                return await self._register(conn, data.get("clientType"))
            case MessageType.CLIENT_SYNC_PANELS:
                panels = data.get("panels")
                if not isinstance(panels, list):
                    log.error("Invalid panel sync data: panels must be an array")
                    await self._send(conn, encode_frame(MessageType.ERROR, message="panels must be an array"))
                    return RouteOutcome.MALFORMED
                synced = self.panels.replace_all(panels)
                log.info(f"Synced {synced} panels from {conn.id} to the façade table")
                return RouteOutcome.SYNCED
            case MessageType.REQUEST_FULL_STATE if conn.role is Role.REMOTE:
                sent = await self.request_full_state(conn)
                return RouteOutcome.DELIVERED if sent else RouteOutcome.NO_AUTHORITY
            case _:
                log.warning(f"Ignoring control frame '{mt.value}' from {conn.id}")
                return RouteOutcome.REJECTED

    async def _register(self, conn: Connection, client_type: Any) -> RouteOutcome:
        try:
            role = Role(ClientType(client_type).value)
        except ValueError:
            log.warning(f"Client {conn.id} sent invalid clientType {client_type!r}")
            await self._send(conn, encode_frame(MessageType.ERROR, message=f"Invalid clientType: {client_type!r}"))
            return RouteOutcome.MALFORMED

        if not conn.assign_role(role):
            log.warning(f"Client {conn.id} already registered as {conn.role.value}; ignoring register as {role.value}")
            return RouteOutcome.REJECTED

        log.info(f"Client {conn.id} registered as {role.value}")
        if role is Role.REMOTE:
            await self.request_full_state(conn)
        elif self.registry.with_role(Role.REMOTE):
            # remotes that registered while no main was around are still empty
            await self._send(conn, encode_frame(MessageType.REQUEST_FULL_STATE))
            log.info(f"Asked new main {conn.id} for full_state on behalf of waiting remotes")
        return RouteOutcome.REGISTERED

    async def request_full_state(self, remote: Connection) -> int:
        """Ask every main socket to publish a full_state for this remote."""
        sent = await self.broadcast_raw(
            encode_frame(MessageType.REQUEST_FULL_STATE, targetClientId=remote.id),
            role=Role.MAIN,
        )
        if sent:
            log.info(f"Requested full_state from {sent} main client(s) for remote {remote.id}")
        else:
            log.info(f"No main client available to serve full_state for remote {remote.id}")
        return sent

    async def _to_mains(self, text: str, exclude: Connection) -> RouteOutcome:
        sent = await self.broadcast_raw(text, role=Role.MAIN, exclude=exclude)
        if not sent:
            log.debug("No main client registered; command dropped")
            return RouteOutcome.NO_AUTHORITY
        return RouteOutcome.DELIVERED

    # ── Outbound ──────────────────────────────────────────────────────

    async def broadcast(self, message: dict, role: Optional[Role] = None) -> int:
        """Send a message to every open socket, or every socket with role."""
        return await self.broadcast_raw(json.dumps(message), role=role)

    async def broadcast_raw(
        self,
        text: str,
        role: Optional[Role] = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        targets = list(self.registry) if role is None else self.registry.with_role(role)
        sent = 0
        for conn in targets:
            if conn is exclude:
                continue
            if await self._send(conn, text):
                sent += 1
        return sent

    async def _send(self, conn: Connection, text: str) -> bool:
        if not conn.is_open():
            return False
        try:
            await conn.socket.send_text(text)
            return True
        except Exception as e:
            log.debug(f"Send to {conn.id} failed: {e}")
            return False

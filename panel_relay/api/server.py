"""
api/server.py — FastAPI app hosting the relay WebSocket and the REST façade.

The WebSocket endpoint is mounted on a single path (settings.relay.ws_path);
upgrade requests for any other path are refused by the ASGI routing layer, so
other channels sharing the port are never intercepted.

REST façade (legacy, mutates the relay-side panel table and notifies every
connected socket):
  GET    /api/panels
  POST   /api/panels
  DELETE /api/panels/{panel_id}
  PUT    /api/panels/{panel_id}/code
  POST   /api/panels/{panel_id}/playback
  POST   /api/broadcast
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from panel_relay import __version__
from panel_relay.config import Settings, get_settings
from panel_relay.core import MessageRouter, PanelNotFound, ProtectedPanel
from panel_relay.protocol import MessageType

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Request bodies
# ──────────────────────────────────────────────────────────────────────────────

class CreatePanelBody(BaseModel):
    title: Optional[str] = None
    code: Optional[str] = None
    position: Optional[dict[str, Any]] = None
    size: Optional[dict[str, Any]] = None


class UpdateCodeBody(BaseModel):
    code: str
    autoPlay: bool = False


class PlaybackBody(BaseModel):
    playing: bool


class BroadcastBody(BaseModel):
    type: str

    model_config = ConfigDict(extra="allow")


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

def create_app(settings: Optional[Settings] = None, router: Optional[MessageRouter] = None) -> FastAPI:
    settings = settings or get_settings()
    router = router or MessageRouter()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"panel-relay starting on {settings.relay.host}:{settings.relay.port} (ws path {settings.relay.ws_path})")
        yield
        log.info("panel-relay shutting down.")

    app = FastAPI(
        title="panel-relay",
        description="Main/remote control-surface relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.router = router

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.relay.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        return {
            "status": "ok",
            "clients": router.registry.counts(),
            "facade_panels": len(router.panels),
            "version": __version__,
        }

    # ─────────────────────────────────────────────────────────────────
    # Relay socket
    # ─────────────────────────────────────────────────────────────────

    @app.websocket(settings.relay.ws_path)
    async def relay_socket(websocket: WebSocket):
        await websocket.accept()
        conn = await router.connect(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await router.handle(conn, raw)
        except Exception as e:
            log.error(f"Socket loop for {conn.id} ended with error: {e}")
        finally:
            router.disconnect(conn)

    # ─────────────────────────────────────────────────────────────────
    # REST façade
    # ─────────────────────────────────────────────────────────────────

    @app.get("/api/panels", tags=["Panels"])
    async def list_panels():
        return router.panels.list()

    @app.post("/api/panels", tags=["Panels"])
    async def create_panel(body: CreatePanelBody):
        panel = router.panels.create(body.title, body.code or "", body.position, body.size)
        await router.broadcast({
            "type": MessageType.PANEL_CREATED.value,
            "panelId": panel["id"],
            "title": panel["title"],
            "code": panel["code"],
            "position": panel["position"],
            "size": panel["size"],
        })
        return {"success": True, "panelId": panel["id"]}

    @app.delete("/api/panels/{panel_id}", tags=["Panels"])
    async def delete_panel(panel_id: str):
        try:
            router.panels.delete(panel_id)
        except ProtectedPanel as e:
            raise HTTPException(status_code=403, detail=str(e))
        except PanelNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        await router.broadcast({"type": MessageType.PANEL_DELETED.value, "panelId": panel_id})
        return {"success": True, "panelId": panel_id}

    @app.put("/api/panels/{panel_id}/code", tags=["Panels"])
    async def update_code(panel_id: str, body: UpdateCodeBody):
        try:
            router.panels.update_code(panel_id, body.code)
        except PanelNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        await router.broadcast({
            "type": MessageType.PANEL_UPDATED.value,
            "panelId": panel_id,
            "code": body.code,
            "autoPlay": body.autoPlay,
        })
        return {"success": True, "panelId": panel_id}

    @app.post("/api/panels/{panel_id}/playback", tags=["Panels"])
    async def set_playback(panel_id: str, body: PlaybackBody):
        try:
            router.panels.set_playing(panel_id, body.playing)
        except PanelNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        await router.broadcast({
            "type": MessageType.PLAYBACK_CHANGED.value,
            "panelId": panel_id,
            "playing": body.playing,
        })
        return {"success": True, "panelId": panel_id, "playing": body.playing}

    @app.post("/api/broadcast", tags=["Panels"])
    async def broadcast(body: BroadcastBody):
        sent = await router.broadcast(body.model_dump())
        log.info(f"Broadcasted '{body.type}' to {sent} clients")
        return {"success": True, "clients": sent}

    return app

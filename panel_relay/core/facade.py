"""
core/facade.py — Relay-side panel table behind the REST façade.

This is the legacy bulk-replace path: a main client pushes
client.syncPanels on every connect and the REST endpoints read/mutate the
table. It is not consulted by the live sync loop, where the main client is
the only authority.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

log = logging.getLogger(__name__)

MASTER_PANEL_ID = "master-panel"


class FacadeError(Exception):
    pass


class PanelNotFound(FacadeError):
    pass


class ProtectedPanel(FacadeError):
    pass


class PanelTable:
    def __init__(self):
        self._panels: dict[str, dict[str, Any]] = {}

    def replace_all(self, panels: list[dict[str, Any]]) -> int:
        """Drop every panel and load the given ones. Returns the synced count."""
        self._panels.clear()
        synced = 0
        for data in panels:
            if not isinstance(data, dict) or not data.get("id"):
                log.warning(f"Skipping invalid panel in sync: {data!r}")
                continue
            if data["id"] == MASTER_PANEL_ID:
                continue
            self._panels[data["id"]] = {
                "id": data["id"],
                "title": data.get("title"),
                "code": data.get("code", ""),
                "position": data.get("position"),
                "size": data.get("size"),
                "playing": bool(data.get("playing", False)),
                "zIndex": data.get("zIndex"),
            }
            synced += 1
        return synced

    def create(
        self,
        title: Optional[str] = None,
        code: str = "",
        position: Optional[dict] = None,
        size: Optional[dict] = None,
    ) -> dict[str, Any]:
        panel_id = f"panel-{int(time.time() * 1000)}"
        while panel_id in self._panels:
            panel_id = f"panel-{int(panel_id.removeprefix('panel-')) + 1}"
        panel = {
            "id": panel_id,
            "title": title or f"Instrument {len(self._panels) + 1}",
            "code": code,
            "position": position or {"x": 0, "y": 0},
            "size": size or {"w": 600, "h": 200},
            "playing": False,
        }
        self._panels[panel_id] = panel
        return panel

    def get(self, panel_id: str) -> dict[str, Any]:
        try:
            return self._panels[panel_id]
        except KeyError:
            raise PanelNotFound(f"Panel '{panel_id}' not found")

    def delete(self, panel_id: str) -> dict[str, Any]:
        if panel_id == MASTER_PANEL_ID:
            raise ProtectedPanel("The master panel is protected and cannot be deleted")
        panel = self.get(panel_id)
        del self._panels[panel_id]
        return panel

    def update_code(self, panel_id: str, code: str) -> dict[str, Any]:
        panel = self.get(panel_id)
        panel["code"] = code
        return panel

    def set_playing(self, panel_id: str, playing: bool) -> dict[str, Any]:
        panel = self.get(panel_id)
        panel["playing"] = playing
        return panel

    def list(self) -> list[dict[str, Any]]:
        return list(self._panels.values())

    def __len__(self) -> int:
        return len(self._panels)

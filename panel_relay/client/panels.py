"""
client/panels.py — Panel state as seen from each client role.

  SnapshotProvider  what a main client needs from the panel-management module
  InMemoryPanels    a minimal SnapshotProvider (headless main, tests)
  RemotePanelList   the rows a remote surface renders, rebuilt from full_state
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from panel_relay.core.events import EventBus
from panel_relay.protocol import PanelSnapshot

log = logging.getLogger(__name__)


@runtime_checkable
class SnapshotProvider(Protocol):
    def panel_snapshots(self) -> list[PanelSnapshot]: ...

    def master_sliders(self) -> list[Any]: ...


# ──────────────────────────────────────────────────────────────────────────────
# Main side
# ──────────────────────────────────────────────────────────────────────────────

class InMemoryPanels:
    """
    Ordered panel store that reacts to remote commands on the bus and
    re-emits every mutation as a main-side domain event.

    Mutations are coroutines because emitting on the bus awaits listeners
    (including the outbound adapter's send).
    """

    def __init__(self, bus: Optional[EventBus] = None):
        self._panels: dict[str, PanelSnapshot] = {}
        self._master: list[Any] = []
        self.bus = bus
        if bus is not None:
            self.bind(bus)

    def bind(self, bus: EventBus) -> None:
        self.bus = bus
        bus.on("panel:toggle", self._on_toggle)
        bus.on("panel:remotePlay", lambda pid: self.set_playing(pid, True))
        bus.on("panel:remotePause", lambda pid: self.set_playing(pid, False))
        bus.on("panel:updateCode", lambda d: self.set_code(d["panelId"], d["code"]))
        bus.on("panel:legacyUpdate", lambda d: self.set_code(d["panel"], d["code"]))
        bus.on("global:stopAll", self._on_stop_all)
        bus.on("slider:masterRemoteChange", lambda d: self.set_master_value(d["sliderId"], d["value"]))

    async def _emit(self, topic: str, data: Any) -> None:
        if self.bus is not None:
            await self.bus.emit(topic, data)

    # ── Mutations ─────────────────────────────────────────────────────

    async def create(self, title: Optional[str] = None, code: str = "", panel_id: Optional[str] = None) -> PanelSnapshot:
        if panel_id is None:
            panel_id = f"panel-{int(time.time() * 1000)}"
            while panel_id in self._panels:
                panel_id = f"panel-{int(panel_id.removeprefix('panel-')) + 1}"
        panel = PanelSnapshot(id=panel_id, title=title or f"Instrument {len(self._panels) + 1}", code=code)
        self._panels[panel_id] = panel
        await self._emit("panel:created", {"id": panel.id, "title": panel.title, "code": panel.code})
        return panel

    async def delete(self, panel_id: str) -> bool:
        if self._panels.pop(panel_id, None) is None:
            return False
        await self._emit("panel:deleted", panel_id)
        return True

    async def rename(self, panel_id: str, title: str) -> bool:
        panel = self._panels.get(panel_id)
        if panel is None:
            return False
        panel.title = title
        await self._emit("panel:renamed", {"id": panel_id, "title": title})
        return True

    async def set_playing(self, panel_id: str, playing: bool) -> bool:
        panel = self._panels.get(panel_id)
        if panel is None:
            log.warning(f"Unknown panel '{panel_id}'")
            return False
        if panel.playing != playing:
            panel.playing = playing
            panel.stale = False
            await self._emit("panel:playingChanged", {"panelId": panel_id, "playing": playing})
        return True

    async def set_code(self, panel_id: str, code: str) -> bool:
        panel = self._panels.get(panel_id)
        if panel is None:
            return False
        panel.code = code
        # new code is not what's playing until the panel is re-evaluated
        panel.stale = panel.playing
        return True

    async def set_master_sliders(self, sliders: list[Any]) -> None:
        self._master = list(sliders)
        await self._emit("master:slidersRendered", self._master)

    async def set_master_value(self, slider_id: Any, value: Any) -> None:
        for slider in self._master:
            if isinstance(slider, dict) and slider.get("id") == slider_id:
                slider["value"] = value
        await self._emit("master:sliderValue", {"sliderId": slider_id, "value": value})

    async def _on_toggle(self, panel_id: str) -> None:
        panel = self._panels.get(panel_id)
        if panel is not None:
            await self.set_playing(panel_id, not panel.playing)

    async def _on_stop_all(self, _data: Any = None) -> None:
        for panel_id, panel in list(self._panels.items()):
            if panel.playing:
                await self.set_playing(panel_id, False)

    # ── SnapshotProvider ──────────────────────────────────────────────

    def panel_snapshots(self) -> list[PanelSnapshot]:
        return [p.model_copy() for p in self._panels.values()]

    def master_sliders(self) -> list[Any]:
        return list(self._master)

    def get(self, panel_id: str) -> Optional[PanelSnapshot]:
        return self._panels.get(panel_id)

    def __len__(self) -> int:
        return len(self._panels)


# ──────────────────────────────────────────────────────────────────────────────
# Remote side
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class PanelRow:
    id: str
    title: str = ""
    code: str = ""
    playing: bool = False
    stale: bool = False
    sliders: list[Any] = field(default_factory=list)
    slider_values: dict[str, Any] = field(default_factory=dict)


_SNAPSHOT_FIELDS = ("title", "code", "playing", "stale", "sliders")


class RemotePanelList:
    def __init__(self):
        self._rows: dict[str, PanelRow] = {}
        self.master_sliders: list[Any] = []
        self.master_values: dict[str, Any] = {}

    def rebuild(self, snapshots: Iterable[PanelSnapshot]) -> dict[str, int]:
        """
        Make the list match the snapshot: rows not in it are removed, new
        ones created, existing ones updated in place, order follows the
        snapshot. Fields absent from a snapshot entry keep their value.
        """
        snapshots = list(snapshots)
        wanted = {s.id for s in snapshots}
        removed = [pid for pid in self._rows if pid not in wanted]
        for pid in removed:
            del self._rows[pid]

        created = updated = 0
        ordered: dict[str, PanelRow] = {}
        for snap in snapshots:
            row = self._rows.get(snap.id)
            if row is None:
                row = PanelRow(id=snap.id)
                created += 1
            else:
                updated += 1
            for name in _SNAPSHOT_FIELDS:
                if name in snap.model_fields_set:
                    value = getattr(snap, name)
                    if name == "sliders":
                        value = list(value or [])
                        # values are carried inside the slider definitions
                        row.slider_values = {}
                    setattr(row, name, value)
            ordered[snap.id] = row
        self._rows = ordered
        return {"removed": len(removed), "created": created, "updated": updated}

    def add(self, panel_id: str, title: Optional[str] = None, code: str = "") -> PanelRow:
        row = self._rows.get(panel_id)
        if row is None:
            row = self._rows[panel_id] = PanelRow(id=panel_id)
        if title is not None:
            row.title = title
        row.code = code
        return row

    def remove(self, panel_id: str) -> bool:
        return self._rows.pop(panel_id, None) is not None

    def rename(self, panel_id: str, title: str) -> bool:
        row = self._rows.get(panel_id)
        if row is None:
            return False
        row.title = title
        return True

    def set_playing(self, panel_id: str, playing: bool) -> bool:
        row = self._rows.get(panel_id)
        if row is None:
            return False
        row.playing = playing
        row.stale = False
        return True

    def set_sliders(self, panel_id: str, sliders: list[Any]) -> bool:
        row = self._rows.get(panel_id)
        if row is None:
            return False
        row.sliders = list(sliders)
        return True

    def set_slider_value(self, panel_id: str, slider_id: Any, value: Any) -> bool:
        row = self._rows.get(panel_id)
        if row is None:
            return False
        row.slider_values[str(slider_id)] = value
        return True

    def get(self, panel_id: str) -> Optional[PanelRow]:
        return self._rows.get(panel_id)

    def ids(self) -> list[str]:
        return list(self._rows)

    def rows(self) -> list[PanelRow]:
        return list(self._rows.values())

    def as_dicts(self) -> list[dict[str, Any]]:
        return [asdict(r) for r in self._rows.values()]

    def __len__(self) -> int:
        return len(self._rows)

"""
main.py — panel-relay application entrypoint.

CLI:
  python run.py start                  start the relay server
  python run.py init-config            create a default config.yaml
  python run.py remote                 run a remote session, print the panel list
  python run.py main --panels set.yaml run a headless main session
  python run.py tags                   print the protocol tag table
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
import uvicorn
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from panel_relay import __version__
from panel_relay.api import create_app
from panel_relay.client import InMemoryPanels, MainSession, PanelRow, RemoteSession
from panel_relay.config import reload_settings
from panel_relay.protocol import CONTROL_TAGS, FACADE_EVENTS, MAIN_EVENTS, REMOTE_COMMANDS

console = Console()
app = typer.Typer(name="panel-relay", help="Main/remote control-surface relay")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


async def _run_until_signal(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows
    await stop.wait()


def panel_table(rows: list[PanelRow], title: str = "Panels") -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Playing", style="green")
    table.add_column("Stale", style="yellow")
    table.add_column("Sliders")
    for row in rows:
        table.add_row(
            row.id,
            row.title,
            "▶" if row.playing else "-",
            "!" if row.stale else "-",
            str(len(row.sliders)),
        )
    return table


# ──────────────────────────────────────────────────────────────────────────────
# CLI commands
# ──────────────────────────────────────────────────────────────────────────────

@app.command()
def start(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    host: Optional[str] = typer.Option(None, "--host", help="Relay bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Relay port"),
):
    """Start the relay server."""
    settings = reload_settings(config)
    if host:
        settings.relay.host = host
    if port:
        settings.relay.port = port
    setup_logging(settings.relay.log_level)

    console.rule(f"[bold blue]panel-relay v{__version__}[/bold blue]")
    console.print(f"[green]✓ WS[/green]        ws://{settings.relay.host}:{settings.relay.port}{settings.relay.ws_path}")
    console.print(f"[green]✓ API[/green]       http://{settings.relay.host}:{settings.relay.port}/api/panels")
    console.print(f"[green]✓ Docs[/green]      http://{settings.relay.host}:{settings.relay.port}/docs\n")

    uvicorn.run(
        create_app(settings),
        host=settings.relay.host,
        port=settings.relay.port,
        log_level=settings.relay.log_level,
        loop="asyncio",
    )


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    from panel_relay.config import Settings
    s = Settings.load()
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command()
def remote(
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Relay WebSocket URL"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Run a remote session and print the mirrored panel list after every rebuild."""
    settings = reload_settings(config)
    setup_logging(settings.relay.log_level)

    async def _remote():
        session = RemoteSession(
            url or settings.client.url,
            reconnect_delay=settings.client.reconnect_delay,
            reconnect_jitter=settings.client.reconnect_jitter,
        )
        session.bus.on("remote:panelsRebuilt", lambda rows: console.print(panel_table(rows, "Remote panels")))
        session.bus.on("remote:panelAdded", lambda row: console.print(f"[green]+[/green] {row.id} {row.title}"))
        session.bus.on("remote:panelRemoved", lambda pid: console.print(f"[red]-[/red] {pid}"))
        session.bus.on("connection:disconnected", lambda _: console.print("[yellow]⚠ disconnected[/yellow]"))
        session.connect()
        await _run_until_signal(asyncio.Event())
        await session.close()

    asyncio.run(_remote())


@app.command("main")
def main_session(
    panels_file: Optional[Path] = typer.Option(None, "--panels", help="YAML list of {title, code} panels"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Relay WebSocket URL"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Run a headless main session that owns an in-memory panel set."""
    settings = reload_settings(config)
    setup_logging(settings.relay.log_level)

    seed: list[dict] = []
    if panels_file:
        with open(panels_file) as f:
            seed = yaml.safe_load(f) or []

    async def _main():
        panels = InMemoryPanels()
        session = MainSession(
            url or settings.client.url,
            panels,
            reconnect_delay=settings.client.reconnect_delay,
            reconnect_jitter=settings.client.reconnect_jitter,
        )
        for i, entry in enumerate(seed):
            await panels.create(entry.get("title"), entry.get("code", ""), panel_id=entry.get("id") or f"panel-{i + 1}")
        rows = [PanelRow(id=p.id, title=p.title, code=p.code) for p in panels.panel_snapshots()]
        console.print(panel_table(rows, "Main panels"))
        session.connect()
        await _run_until_signal(asyncio.Event())
        await session.close()

    asyncio.run(_main())


@app.command()
def tags():
    """Print the protocol tag table."""
    table = Table(title="Message tags", show_header=True)
    table.add_column("Direction", style="cyan")
    table.add_column("Tags")
    for direction, group in (
        ("remote → main", REMOTE_COMMANDS),
        ("main → remote", MAIN_EVENTS),
        ("control plane", CONTROL_TAGS),
        ("façade → all", FACADE_EVENTS),
    ):
        table.add_row(direction, ", ".join(sorted(t.value for t in group)))
    console.print(table)


if __name__ == "__main__":
    app()

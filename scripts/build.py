#!/usr/bin/env python3
"""
scripts/build.py — Build a standalone panel-relay executable.

Usage:
    python scripts/build.py [--onefile] [--name panel-relay]

Requires: pip install pyinstaller
"""

import subprocess
import sys
from pathlib import Path


def build(name: str = "panel-relay", onefile: bool = True):
    root = Path(__file__).parent.parent
    entry = root / "panel_relay" / "_entry.py"

    entry.write_text(
        "from panel_relay.main import app\n"
        "if __name__ == '__main__':\n"
        "    app()\n"
    )

    cmd = [
        sys.executable, "-m", "PyInstaller",
        "--name", name,
        "--clean",
        "--noconfirm",
        "--hidden-import", "panel_relay.config.settings",
        "--hidden-import", "panel_relay.core.router",
        "--hidden-import", "panel_relay.client.session",
        "--hidden-import", "panel_relay.api.server",
        "--hidden-import", "uvicorn.lifespan.on",
        "--hidden-import", "uvicorn.protocols.http.auto",
        "--hidden-import", "uvicorn.protocols.websockets.auto",
        "--hidden-import", "uvicorn.logging",
    ]
    config = root / "config.yaml"
    if config.exists():
        cmd += ["--add-data", f"{config}:."]

    if onefile:
        cmd.append("--onefile")

    cmd.append(str(entry))

    print(f"Building: {' '.join(cmd)}\n")
    result = subprocess.run(cmd, cwd=root)

    entry.unlink(missing_ok=True)

    if result.returncode == 0:
        print(f"\n✓ Build successful: {root / 'dist' / name}")
    else:
        print("\n✗ Build failed.")
        sys.exit(1)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser()
    parser.add_argument("--name", default="panel-relay")
    parser.add_argument("--onefile", action="store_true", default=True)
    parser.add_argument("--onedir", dest="onefile", action="store_false")
    args = parser.parse_args()
    build(name=args.name, onefile=args.onefile)

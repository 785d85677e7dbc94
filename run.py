#!/usr/bin/env python3
"""
run.py — Launch panel-relay without installing.

Usage (from the panel-relay directory):
    python run.py start
    python run.py init-config
    python run.py remote --url ws://192.168.1.20:8080/ws
    python run.py main --panels panels.yaml
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from panel_relay.main import app

if __name__ == "__main__":
    app()

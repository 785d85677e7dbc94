"""
panel-relay — Main/remote control-surface relay for live-coding sessions.

Modules:
  protocol/ — wire tags, frame codec, typed message variants
  core/     — role registry, message router, event bus, façade panel table
  client/   — main & remote sessions (outbound adapter, inbound dispatcher, reconnect)
  api/      — FastAPI WebSocket endpoint + REST façade
  config/   — Settings, env loading, YAML config
"""

__version__ = "1.0.0"
__author__ = "r0astr"

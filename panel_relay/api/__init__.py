"""api — FastAPI relay WebSocket endpoint + REST façade."""
from .server import create_app

__all__ = ["create_app"]

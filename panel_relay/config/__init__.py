"""config — Settings, env loading, YAML config."""
from .settings import ClientSettings, RelaySettings, Settings, get_settings, reload_settings

__all__ = ["ClientSettings", "RelaySettings", "Settings", "get_settings", "reload_settings"]

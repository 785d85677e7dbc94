"""
config/settings.py — Central configuration via env vars + YAML override.

Priority: ENV > config.yaml > defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    host: str = Field("0.0.0.0", description="Relay bind host")
    port: int = Field(8080, description="Relay port (WebSocket + REST façade)")
    ws_path: str = Field("/ws", description="WebSocket endpoint path")
    cors_origins: list[str] = Field(["*"], description="CORS allowed origins")
    log_level: str = Field("info", description="Log level")

    model_config = SettingsConfigDict(env_prefix="RELAY_")


class ClientSettings(BaseSettings):
    url: str = Field("ws://localhost:8080/ws", description="Relay WebSocket URL")
    reconnect_delay: float = Field(3.0, description="Seconds between reconnect attempts")
    reconnect_jitter: float = Field(0.0, description="Max random seconds added to the reconnect delay")

    model_config = SettingsConfigDict(env_prefix="CLIENT_")


class Settings(BaseSettings):
    relay: RelaySettings = Field(default_factory=RelaySettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    config_file: Path = Field(Path("config.yaml"), description="Path to YAML config file")

    model_config = SettingsConfigDict(env_prefix="PANEL_RELAY_")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings, merging YAML file if present."""
        path = config_path or Path(os.environ.get("PANEL_RELAY_CONFIG_FILE", "config.yaml"))
        yaml_data: dict = {}

        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

        relay = RelaySettings(**_without_env(yaml_data.get("relay", {}), "RELAY_"))
        client = ClientSettings(**_without_env(yaml_data.get("client", {}), "CLIENT_"))

        return cls(relay=relay, client=client, config_file=path)

    def to_yaml(self, path: Path) -> None:
        """Save current settings to YAML."""
        data = {
            "relay": self.relay.model_dump(),
            "client": self.client.model_dump(),
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _without_env(section: dict, prefix: str) -> dict:
    # init kwargs beat env vars in pydantic-settings; drop the ones env overrides
    return {k: v for k, v in section.items() if f"{prefix}{k}".upper() not in os.environ}


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings(config_path: Optional[Path] = None) -> Settings:
    global _settings
    _settings = Settings.load(config_path)
    return _settings

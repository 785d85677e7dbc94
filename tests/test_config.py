"""
tests/test_config.py — Settings defaults, YAML override, round trip to disk.
"""

import yaml

from panel_relay.config import Settings, reload_settings, get_settings


def test_defaults(tmp_path):
    s = Settings.load(tmp_path / "missing.yaml")
    assert s.relay.port == 8080
    assert s.relay.ws_path == "/ws"
    assert s.client.reconnect_delay == 3.0
    assert s.client.reconnect_jitter == 0.0


def test_yaml_overrides_defaults(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(yaml.dump({
        "relay": {"port": 9001, "ws_path": "/relay"},
        "client": {"url": "ws://10.0.0.5:9001/relay", "reconnect_jitter": 0.5},
    }))
    s = Settings.load(cfg)
    assert s.relay.port == 9001
    assert s.relay.ws_path == "/relay"
    assert s.relay.host == "0.0.0.0"
    assert s.client.url == "ws://10.0.0.5:9001/relay"
    assert s.client.reconnect_jitter == 0.5
    assert s.config_file == cfg


def test_to_yaml_writes_both_sections(tmp_path):
    out = tmp_path / "out.yaml"
    Settings.load(tmp_path / "missing.yaml").to_yaml(out)
    data = yaml.safe_load(out.read_text())
    assert data["relay"]["port"] == 8080
    assert data["client"]["reconnect_delay"] == 3.0


def test_reload_replaces_singleton(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("relay:\n  port: 7000\n")
    s = reload_settings(cfg)
    assert get_settings() is s
    assert get_settings().relay.port == 7000
    reload_settings(tmp_path / "missing.yaml")


def test_env_beats_yaml(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("relay:\n  port: 7000\n  ws_path: /relay\n")
    monkeypatch.setenv("RELAY_PORT", "9100")
    s = Settings.load(cfg)
    assert s.relay.port == 9100
    assert s.relay.ws_path == "/relay"

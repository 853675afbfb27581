import json

from ntp_query import config
from ntp_query.query import DEFAULT_NTP_PORT, DEFAULT_NTP_SERVER, NTP_REPLY_TIMEOUT_MS


def test_missing_config_is_empty(tmp_path, monkeypatch):
    monkeypatch.setenv("NTP_QUERY_CONFIG", str(tmp_path / "absent.json"))
    assert config.load_config() == {}


def test_save_then_load(tmp_path, monkeypatch):
    path = tmp_path / "nested" / "cfg.json"
    monkeypatch.setenv("NTP_QUERY_CONFIG", str(path))
    config.save_config({"server": "time.example.org", "port": 1123})
    assert json.loads(path.read_text()) == {"server": "time.example.org", "port": 1123}
    assert config.load_config()["server"] == "time.example.org"


def test_corrupt_config_ignored(tmp_path, monkeypatch):
    path = tmp_path / "cfg.json"
    path.write_text("{not json")
    monkeypatch.setenv("NTP_QUERY_CONFIG", str(path))
    assert config.load_config() == {}


def test_query_defaults_merge():
    d = config.query_defaults({"timeout_ms": 2500, "server": None})
    assert d == {
        "server": DEFAULT_NTP_SERVER,
        "port": DEFAULT_NTP_PORT,
        "timeout_ms": 2500,
    }
    assert config.query_defaults({})["timeout_ms"] == NTP_REPLY_TIMEOUT_MS

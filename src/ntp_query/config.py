"""Persisted default query parameters for ntp_query."""
import json
import logging
import os
from typing import Dict, Optional

from .query import DEFAULT_NTP_PORT, DEFAULT_NTP_SERVER, NTP_REPLY_TIMEOUT_MS

logger = logging.getLogger(__name__)

_CONFIG_ENV = "NTP_QUERY_CONFIG"
_DEFAULT_CONFIG_PATH = os.path.expanduser("~/.ntp_query_config.json")


def config_path() -> str:
    return os.environ.get(_CONFIG_ENV) or _DEFAULT_CONFIG_PATH


def load_config() -> Dict:
    path = config_path()
    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("config: ignoring unreadable %s: %s", path, e)
            return {}
        return cfg if isinstance(cfg, dict) else {}
    return {}


def save_config(cfg: Dict) -> None:
    path = config_path()
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)
    with open(path, "w") as f:
        json.dump(cfg, f, indent=2)


def query_defaults(cfg: Optional[Dict] = None) -> Dict:
    """Stored server/port/timeout_ms layered over the package defaults."""
    if cfg is None:
        cfg = load_config()
    out = {
        "server": DEFAULT_NTP_SERVER,
        "port": DEFAULT_NTP_PORT,
        "timeout_ms": NTP_REPLY_TIMEOUT_MS,
    }
    for key in out:
        if cfg.get(key) is not None:
            out[key] = cfg[key]
    return out

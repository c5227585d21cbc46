"""
Configuration for ctest-explorer
Loaded once from ~/.ctest-explorer/config.json with smart defaults
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

_config = None
_config_lock = threading.Lock()

logger = logging.getLogger(__name__)

DEFAULTS = {
    "build_dir": "build",
    "ctest_command": "ctest",
    "list_flag": "--gtest_list_tests",
    "filter_flag": "--gtest_filter=",
    "query_timeout": 30,
    "poll_interval": 0.1,
    "kill_grace_seconds": 5,
    "run_timeout": 0,
    "log_level": "INFO",
    "workspace": ".",
}


def config_path() -> Path:
    return Path.home() / ".ctest-explorer" / "config.json"


def load_config() -> dict:
    """Load configuration with smart defaults"""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                path = config_path()
                loaded = {}
                if path.exists():
                    try:
                        loaded = json.loads(path.read_text())
                    except Exception as e:
                        logger.warning(f"Ignoring unreadable config {path}: {e}")
                        loaded = {}
                if not isinstance(loaded, dict):
                    loaded = {}

                for key, value in DEFAULTS.items():
                    loaded.setdefault(key, value)
                _config = loaded

    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next load re-reads the file"""
    global _config
    with _config_lock:
        _config = None


def merged_config(overrides: Optional[dict] = None) -> dict:
    """Return a copy of the configuration with non-None overrides applied"""
    config = dict(load_config())
    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value
    return config

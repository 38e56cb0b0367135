from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .paths import get_default_settings_paths
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "unknown_setting_keys",
]

LOGGER = logging.getLogger("appmigrate.settings")

SETTINGS_VERSION = 1


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "paths": {
        "backup_root": None,
        "apps_dir": None,
        "data_dir": None,
        "config_file": None,
        "certs_dir": None,
        "log_dir": None,
    },
    "database": {
        "name": "nextcloud",
        "user": "nextcloud",
        "host": "localhost",
        "mysql_bin": "mysql",
        "mysqldump_bin": "mysqldump",
        "mysqladmin_bin": "mysqladmin",
        "defaults_file": None,
        "password_file": None,
        "wait_timeout_s": 60,
        "poll_interval_s": 1.0,
    },
    "occ": {
        "command": ["occ"],
    },
    "sync": {
        "engine": "rsync",
        "rsync_bin": "rsync",
    },
    "require_root": True,
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                result[key] = _merge(value, current if isinstance(current, dict) else {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def unknown_setting_keys(settings: Dict[str, Any]) -> list[str]:
    return list(SETTINGS_VALIDATOR.unknown_keys(settings))


def _read_first(candidates: Iterable[Path]) -> Dict[str, Any]:
    for candidate in candidates:
        try:
            with open(candidate, "r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except FileNotFoundError:
            continue
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", candidate, exc)
            continue
        if isinstance(loaded, dict):
            return loaded
    return {}


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the first readable settings file and merge it over the defaults."""

    candidates = [Path(path)] if path is not None else get_default_settings_paths()
    merged = merge_defaults(_read_first(candidates))
    for key in unknown_setting_keys(merged):
        LOGGER.warning("Unknown settings key: %s", key)
    return merged

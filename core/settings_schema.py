from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Set

# Section name -> allowed keys; ``None`` marks a scalar top-level entry.
_ALLOWED_STRUCTURE: Dict[str, Optional[Set[str]]] = {
    "paths": {
        "backup_root",
        "apps_dir",
        "data_dir",
        "config_file",
        "certs_dir",
        "log_dir",
    },
    "database": {
        "name",
        "user",
        "host",
        "mysql_bin",
        "mysqldump_bin",
        "mysqladmin_bin",
        "defaults_file",
        "password_file",
        "wait_timeout_s",
        "poll_interval_s",
    },
    "occ": {"command"},
    "sync": {"engine", "rsync_bin"},
    "require_root": None,
    "version": None,
}


@dataclass(slots=True)
class SettingsValidator:
    schema: Mapping[str, Optional[Set[str]]]

    def unknown_keys(self, payload: Mapping[str, Any]) -> Iterable[str]:
        return sorted(self._iter_unknown(payload))

    def _iter_unknown(self, payload: Mapping[str, Any]) -> Iterable[str]:
        for section, value in payload.items():
            if section not in self.schema:
                yield section
                continue
            allowed = self.schema[section]
            if allowed is None or not isinstance(value, Mapping):
                continue
            for key in value:
                if key not in allowed:
                    yield f"{section}.{key}"


SETTINGS_VALIDATOR = SettingsValidator(_ALLOWED_STRUCTURE)

__all__ = ["SETTINGS_VALIDATOR", "SettingsValidator"]

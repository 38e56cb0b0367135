from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

__all__ = [
    "HostPaths",
    "get_backup_root",
    "get_common_root",
    "get_data_root",
    "get_default_settings_paths",
    "get_logs_dir",
    "resolve_host_paths",
]

_DEFAULT_DATA_ROOT = "/var/snap/nextcloud/current"
_DEFAULT_COMMON_ROOT = "/var/snap/nextcloud/common"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _env_path(*names: str) -> Optional[Path]:
    for name in names:
        value = os.environ.get(name)
        if not value:
            continue
        try:
            return _expand_path(value)
        except (OSError, RuntimeError):
            continue
    return None


def get_data_root() -> Path:
    """Return the versioned data root of the deployment (``SNAP_DATA`` style)."""

    return _env_path("APPMIGRATE_DATA_ROOT", "SNAP_DATA") or Path(_DEFAULT_DATA_ROOT)


def get_common_root() -> Path:
    """Return the unversioned common root of the deployment (``SNAP_COMMON`` style)."""

    return _env_path("APPMIGRATE_COMMON_ROOT", "SNAP_COMMON") or Path(_DEFAULT_COMMON_ROOT)


def get_backup_root(common_root: Path) -> Path:
    return common_root / "backups"


def get_logs_dir(common_root: Path) -> Path:
    return common_root / "logs"


def get_default_settings_paths() -> list[Path]:
    """Return the search order for the settings file."""

    paths = []
    explicit = _env_path("APPMIGRATE_SETTINGS")
    if explicit is not None:
        paths.append(explicit)
    paths.append(get_common_root() / "appmigrate.json")
    return paths


@dataclass(slots=True)
class HostPaths:
    """Live locations of every piece of migratable state on this host."""

    backup_root: Path
    apps_dir: Path
    data_dir: Path
    config_file: Path
    certs_dir: Path
    log_dir: Path
    db_password_file: Path


def _override(overrides: Mapping[str, Any], key: str, default: Path) -> Path:
    value = overrides.get(key)
    if isinstance(value, str) and value.strip():
        return _expand_path(value)
    return default


def resolve_host_paths(settings: Optional[Mapping[str, Any]] = None) -> HostPaths:
    """Derive host paths from the environment, honouring ``paths`` overrides."""

    settings = settings or {}
    overrides = settings.get("paths") if isinstance(settings.get("paths"), Mapping) else {}
    database = settings.get("database") if isinstance(settings.get("database"), Mapping) else {}
    data_root = get_data_root()
    common_root = get_common_root()

    password_file = database.get("password_file")
    if isinstance(password_file, str) and password_file.strip():
        db_password_file = _expand_path(password_file)
    else:
        db_password_file = data_root / "mysql" / "nextcloud_password"

    return HostPaths(
        backup_root=_override(overrides, "backup_root", get_backup_root(common_root)),
        apps_dir=_override(overrides, "apps_dir", data_root / "nextcloud" / "extra-apps"),
        data_dir=_override(overrides, "data_dir", common_root / "nextcloud" / "data"),
        config_file=_override(overrides, "config_file", data_root / "nextcloud" / "config" / "config.php"),
        certs_dir=_override(overrides, "certs_dir", data_root / "certs"),
        log_dir=_override(overrides, "log_dir", get_logs_dir(common_root)),
        db_password_file=db_password_file,
    )

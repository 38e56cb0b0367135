"""Export and import handlers for the six components."""
from __future__ import annotations

import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from core.logging_utils import redact_secret
from core.paths import HostPaths

from .collaborators import AppStatus, CredentialSource, DatabaseAdmin, FileSync
from .errors import CollaboratorError
from .layout import BackupLayout
from .logs import MigrationLogger
from .types import Component, ComponentResult, Direction, UserKeyRecord

DB_PASSWORD_SENTINEL = "DBPASSWORD"
KEYS_DIRNAME = "files_encryption"
_CONFIG_MODE = 0o640

_DBPASSWORD_RE = re.compile(
    r"(?P<prefix>(?P<kq>['\"])dbpassword(?P=kq)\s*=>\s*)"
    r"(?P<quote>['\"])(?P<value>(?:\\.|(?!(?P=quote)).)*)(?P=quote)"
)

# The status tool always prints this while the application is suspended.
_BENIGN_STATUS_RE = re.compile(r"\bis in maintenance mode\b", re.IGNORECASE)


@dataclass(slots=True)
class HandlerContext:
    paths: HostPaths
    sync: FileSync
    database: DatabaseAdmin
    credentials: CredentialSource
    status: AppStatus
    logger: MigrationLogger


# ----------------------------------------------------------------------
# helpers


def mask_db_password(text: str) -> Tuple[str, bool]:
    """Replace the ``dbpassword`` value of a PHP config with the sentinel."""

    def _replace(match: re.Match) -> str:
        quote = match["quote"]
        return f"{match['prefix']}{quote}{DB_PASSWORD_SENTINEL}{quote}"

    masked, count = _DBPASSWORD_RE.subn(_replace, text, count=1)
    return masked, bool(count)


def _php_single_quoted(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def unmask_db_password(text: str, password: str) -> Tuple[str, bool]:
    """Put *password* back where :func:`mask_db_password` left the sentinel."""

    replaced = False

    def _replace(match: re.Match) -> str:
        nonlocal replaced
        if match["value"] != DB_PASSWORD_SENTINEL:
            return match.group(0)
        replaced = True
        return f"{match['prefix']}{_php_single_quoted(password)}"

    restored = _DBPASSWORD_RE.sub(_replace, text, count=1)
    return restored, replaced


def _clear(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def _require(layout: BackupLayout, component: Component) -> Path:
    source = layout.path_for(component)
    if not source.exists():
        raise FileNotFoundError(f"Backup {layout.root} has no {component.subpath}")
    return source


def _write_atomic(target: Path, text: str) -> None:
    mode = target.stat().st_mode & 0o777 if target.exists() else _CONFIG_MODE
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _safe_username(name: str) -> bool:
    return bool(name) and name not in {".", ".."} and "/" not in name and "\x00" not in name


# ----------------------------------------------------------------------
# handlers


class ComponentHandler:
    """One symmetric export/import pair.

    Handlers raise :class:`CollaboratorError` or :class:`OSError` on failure;
    :meth:`run` turns that into a fatal or warning result depending on
    ``fatal_on_failure``.
    """

    component: Component
    fatal_on_failure = True

    def __init__(self, context: HandlerContext) -> None:
        self.ctx = context

    def export(self, layout: BackupLayout) -> ComponentResult:
        raise NotImplementedError

    def import_(self, layout: BackupLayout) -> ComponentResult:
        raise NotImplementedError

    def run(self, direction: Direction, layout: BackupLayout) -> ComponentResult:
        try:
            if direction is Direction.EXPORT:
                return self.export(layout)
            return self.import_(layout)
        except (CollaboratorError, OSError) as exc:
            if self.fatal_on_failure:
                return ComponentResult.fatal(self.component, str(exc))
            return ComponentResult.warning(self.component, str(exc))

    def _ok(self) -> ComponentResult:
        return ComponentResult.success(self.component)


class _TreeHandler(ComponentHandler):
    """Components that are a plain directory mirrored in and out of the backup."""

    def live_dir(self) -> Path:
        raise NotImplementedError

    def export(self, layout: BackupLayout) -> ComponentResult:
        self.ctx.sync.sync(self.live_dir(), layout.path_for(self.component))
        return self._ok()

    def import_(self, layout: BackupLayout) -> ComponentResult:
        source = _require(layout, self.component)
        live = self.live_dir()
        _clear(live)
        self.ctx.sync.sync(source, live)
        return self._ok()


class AppsHandler(_TreeHandler):
    component = Component.APPS

    def live_dir(self) -> Path:
        return self.ctx.paths.apps_dir


class DataHandler(_TreeHandler):
    component = Component.DATA

    def live_dir(self) -> Path:
        return self.ctx.paths.data_dir


class CertsHandler(_TreeHandler):
    component = Component.CERTS

    def live_dir(self) -> Path:
        return self.ctx.paths.certs_dir

    def export(self, layout: BackupLayout) -> ComponentResult:
        if not self.live_dir().is_dir():
            return ComponentResult.skipped(self.component, "No certificates to export")
        return super().export(layout)

    def import_(self, layout: BackupLayout) -> ComponentResult:
        if not layout.has(self.component):
            return ComponentResult.skipped(self.component, "Backup contains no certificates")
        return super().import_(layout)


class DatabaseHandler(ComponentHandler):
    component = Component.DATABASE

    def export(self, layout: BackupLayout) -> ComponentResult:
        self.ctx.database.dump(layout.path_for(self.component))
        return self._ok()

    def import_(self, layout: BackupLayout) -> ComponentResult:
        dump = _require(layout, self.component)
        password = self.ctx.credentials.database_password()
        self.ctx.logger.info("database_recreate", password=redact_secret(password))
        self.ctx.database.recreate(password)
        self.ctx.database.load(dump)
        return self._ok()


class ConfigHandler(ComponentHandler):
    component = Component.CONFIG

    def export(self, layout: BackupLayout) -> ComponentResult:
        text = self.ctx.paths.config_file.read_text(encoding="utf-8")
        masked, found = mask_db_password(text)
        if not found:
            self.ctx.logger.warning("Config has no dbpassword entry; copied as-is")
        layout.path_for(self.component).write_text(masked, encoding="utf-8")
        return self._ok()

    def import_(self, layout: BackupLayout) -> ComponentResult:
        if not layout.has(self.component):
            return ComponentResult.skipped(self.component, "Backup contains no config")
        text = layout.path_for(self.component).read_text(encoding="utf-8")
        password = self.ctx.credentials.database_password()
        restored, replaced = unmask_db_password(text, password)
        if not replaced:
            self.ctx.logger.note("Config carries no password placeholder; copied as-is")
        _write_atomic(self.ctx.paths.config_file, restored)
        self.ctx.logger.info("config_written", path=str(self.ctx.paths.config_file), password=redact_secret(password))
        return self._ok()


class KeysHandler(ComponentHandler):
    """Server-wide and per-user encryption keys. Failures here only warn."""

    component = Component.KEYS
    fatal_on_failure = False

    def _surface(self, diagnostics: Iterable[str]) -> None:
        for line in diagnostics:
            if _BENIGN_STATUS_RE.search(line):
                continue
            self.ctx.logger.warning(line, component=self.component.value)

    def _users(self) -> List[str]:
        users = self.ctx.status.list_users()
        self._surface(users.diagnostics)
        safe = []
        for name in users.value:
            if _safe_username(name):
                safe.append(name)
            else:
                self.ctx.logger.warning(f"Ignoring unusable username {name!r}")
        return safe

    def user_keys(self, users: Iterable[str]) -> List[UserKeyRecord]:
        data_dir = self.ctx.paths.data_dir
        records = []
        for name in users:
            source = data_dir / name / KEYS_DIRNAME
            if source.is_dir():
                records.append(UserKeyRecord(username=name, source=source, subpath=f"{name}/{KEYS_DIRNAME}"))
        return records

    def export(self, layout: BackupLayout) -> ComponentResult:
        status = self.ctx.status.encryption_enabled()
        self._surface(status.diagnostics)
        if not status.value:
            return ComponentResult.skipped(self.component, "Encryption is not enabled")

        keys_root = layout.path_for(self.component)
        keys_root.mkdir(exist_ok=True)
        failures: List[str] = []
        system_keys = self.ctx.paths.data_dir / KEYS_DIRNAME
        if system_keys.is_dir():
            try:
                self.ctx.sync.sync(system_keys, keys_root / KEYS_DIRNAME)
            except CollaboratorError as exc:
                failures.append(str(exc))

        for record in self.user_keys(self._users()):
            try:
                self.ctx.sync.sync(record.source, keys_root / record.subpath)
            except CollaboratorError as exc:
                failures.append(f"{record.username}: {exc}")

        if failures:
            return ComponentResult.warning(self.component, "; ".join(failures))
        return self._ok()

    def import_(self, layout: BackupLayout) -> ComponentResult:
        if not layout.has(self.component):
            return ComponentResult.skipped(self.component, "Backup contains no encryption keys")
        data_dir = self.ctx.paths.data_dir
        users = self._users()
        _clear(data_dir / KEYS_DIRNAME)
        for name in users:
            _clear(data_dir / name / KEYS_DIRNAME)
        self.ctx.sync.sync(layout.path_for(self.component), data_dir)
        return self._ok()


HANDLER_TYPES = (AppsHandler, DatabaseHandler, ConfigHandler, KeysHandler, CertsHandler, DataHandler)


def build_handlers(context: HandlerContext) -> Dict[Component, ComponentHandler]:
    return {handler_type.component: handler_type(context) for handler_type in HANDLER_TYPES}


__all__ = [
    "AppsHandler",
    "CertsHandler",
    "ComponentHandler",
    "ConfigHandler",
    "DB_PASSWORD_SENTINEL",
    "DataHandler",
    "DatabaseHandler",
    "HandlerContext",
    "KeysHandler",
    "build_handlers",
    "mask_db_password",
    "unmask_db_password",
]

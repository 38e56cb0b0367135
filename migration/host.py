"""Collaborators backed by the host's own tools (rsync, mysql, occ)."""
from __future__ import annotations

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError

from core.paths import HostPaths
from core.tools import ToolError, run_tool

from .collaborators import AppStatus, CredentialSource, DatabaseAdmin, FileSync, MaintenanceControl
from .errors import CollaboratorError
from .types import QueryResult

LOGGER = logging.getLogger("appmigrate.host")


# ----------------------------------------------------------------------
# File synchronisation


class RsyncFileSync(FileSync):
    def __init__(self, rsync_bin: str = "rsync") -> None:
        self._rsync = rsync_bin

    def sync(self, source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        # trailing slash: copy the contents of source, not source itself
        try:
            run_tool([self._rsync, "-ah", f"{str(source).rstrip('/')}/", str(dest)])
        except ToolError as exc:
            raise CollaboratorError(f"Unable to sync {source} to {dest}: {exc}") from exc


class CopyTreeSync(FileSync):
    """Pure filesystem mirror for hosts without rsync."""

    def sync(self, source: Path, dest: Path) -> None:
        if not source.is_dir():
            raise CollaboratorError(f"Unable to sync {source}: not a directory")
        try:
            shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
        except (OSError, shutil.Error) as exc:
            raise CollaboratorError(f"Unable to sync {source} to {dest}: {exc}") from exc


def build_file_sync(settings: Mapping[str, Any]) -> FileSync:
    raw = settings.get("sync") if isinstance(settings.get("sync"), Mapping) else {}
    engine = str(raw.get("engine") or "rsync").lower()
    if engine == "copytree":
        return CopyTreeSync()
    if engine != "rsync":
        raise CollaboratorError(f"Unknown sync engine {engine!r}")
    return RsyncFileSync(str(raw.get("rsync_bin") or "rsync"))


# ----------------------------------------------------------------------
# Database


def _quote_literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _quote_identifier(value: str) -> str:
    return "`" + value.replace("`", "``") + "`"


class MysqlDatabase(DatabaseAdmin):
    """Drive the MySQL client tools for dump, restore and readiness."""

    def __init__(
        self,
        *,
        name: str = "nextcloud",
        user: str = "nextcloud",
        host: str = "localhost",
        mysql_bin: str = "mysql",
        mysqldump_bin: str = "mysqldump",
        mysqladmin_bin: str = "mysqladmin",
        defaults_file: Optional[str] = None,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.user = user
        self.host = host
        self._mysql = mysql_bin
        self._mysqldump = mysqldump_bin
        self._mysqladmin = mysqladmin_bin
        self._defaults_file = defaults_file
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "MysqlDatabase":
        raw = settings.get("database") if isinstance(settings.get("database"), Mapping) else {}
        return cls(
            name=str(raw.get("name") or "nextcloud"),
            user=str(raw.get("user") or "nextcloud"),
            host=str(raw.get("host") or "localhost"),
            mysql_bin=str(raw.get("mysql_bin") or "mysql"),
            mysqldump_bin=str(raw.get("mysqldump_bin") or "mysqldump"),
            mysqladmin_bin=str(raw.get("mysqladmin_bin") or "mysqladmin"),
            defaults_file=raw.get("defaults_file") or None,
            poll_interval=float(raw.get("poll_interval_s") or 1.0),
        )

    def _cmd(self, binary: str, *args: str) -> List[str]:
        cmd = [binary]
        # --defaults-file must come first for the MySQL client tools
        if self._defaults_file:
            cmd.append(f"--defaults-file={self._defaults_file}")
        cmd.extend(args)
        return cmd

    # ------------------------------------------------------------------
    def wait_until_ready(self, timeout: float) -> None:
        deadline = self._clock() + max(0.0, float(timeout))
        last_error = "no answer"
        while True:
            try:
                result = run_tool(self._cmd(self._mysqladmin, "ping"), check=False)
            except ToolError as exc:
                raise CollaboratorError(f"Unable to check the database: {exc}") from exc
            if result.returncode == 0:
                return
            lines = result.stderr_lines
            last_error = lines[-1] if lines else f"exit status {result.returncode}"
            if self._clock() >= deadline:
                raise CollaboratorError(f"Database not ready after {timeout:g}s: {last_error}")
            self._sleep(self._poll_interval)

    def dump(self, dest: Path) -> None:
        try:
            with open(dest, "wb") as handle:
                run_tool(self._cmd(self._mysqldump, "--lock-tables", self.name), stdout=handle)
        except ToolError as exc:
            raise CollaboratorError(f"Unable to export database: {exc}") from exc

    def recreate(self, password: str) -> None:
        database = _quote_identifier(self.name)
        account = f"{_quote_literal(self.user)}@{_quote_literal(self.host)}"
        secret = _quote_literal(password)
        statements = "\n".join(
            [
                f"DROP DATABASE IF EXISTS {database};",
                f"CREATE DATABASE {database};",
                f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {secret};",
                f"ALTER USER {account} IDENTIFIED BY {secret};",
                f"GRANT ALL PRIVILEGES ON {database}.* TO {account};",
                "FLUSH PRIVILEGES;",
            ]
        )
        # statements go through stdin so the password never shows up in ps
        try:
            run_tool(self._cmd(self._mysql), input_data=statements.encode("utf-8"))
        except ToolError as exc:
            raise CollaboratorError(f"Unable to recreate database: {exc}") from exc

    def load(self, source: Path) -> None:
        try:
            with open(source, "rb") as handle:
                run_tool(self._cmd(self._mysql, self.name), stdin=handle)
        except ToolError as exc:
            raise CollaboratorError(f"Unable to import database: {exc}") from exc


class FileCredentialSource(CredentialSource):
    """Read the application's database password from the host's setup."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def database_password(self) -> str:
        try:
            value = self._path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise CollaboratorError(f"Unable to read database password from {self._path}: {exc}") from exc
        if not value:
            raise CollaboratorError(f"Database password file {self._path} is empty")
        return value


# ----------------------------------------------------------------------
# Application console


class EncryptionStatusPayload(BaseModel):
    """``occ encryption:status --output=json``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    enabled: bool = Field(..., description="True when server-side encryption is on.")
    default_module: Optional[str] = Field(None, alias="defaultModule")


class UserListPayload(RootModel[Dict[str, Any]]):
    """``occ user:list --output=json``: username -> display name."""

    def usernames(self) -> List[str]:
        return sorted(str(name) for name in self.root)


def _split_json_output(stdout: str) -> Tuple[Optional[str], List[str]]:
    """Separate the JSON document from any plain-text chatter around it."""

    payload: Optional[str] = None
    chatter: List[str] = []
    for line in stdout.splitlines():
        text = line.strip()
        if not text:
            continue
        if payload is None and text[:1] in "{[":
            payload = text
            continue
        chatter.append(text)
    return payload, chatter


class OccConsole(AppStatus, MaintenanceControl):
    """Typed queries over the application's ``occ`` console."""

    def __init__(self, command: Sequence[str] = ("occ",)) -> None:
        self._command = [str(part) for part in command]

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "OccConsole":
        raw = settings.get("occ") if isinstance(settings.get("occ"), Mapping) else {}
        command = raw.get("command") or ["occ"]
        if isinstance(command, str):
            command = command.split()
        return cls(command)

    def _run(self, *args: str) -> Tuple[str, List[str]]:
        try:
            result = run_tool([*self._command, *args])
        except ToolError as exc:
            raise CollaboratorError(f"occ {' '.join(args)} failed: {exc}") from exc
        return result.stdout, result.stderr_lines

    def _query(self, model, *args: str):
        stdout, diagnostics = self._run(*args, "--output=json")
        payload, chatter = _split_json_output(stdout)
        if payload is None:
            raise CollaboratorError(f"occ {args[0]} returned no JSON output")
        try:
            parsed = model.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise CollaboratorError(f"occ {args[0]} returned unexpected output: {exc}") from exc
        return parsed, chatter + diagnostics

    # ------------------------------------------------------------------
    def encryption_enabled(self) -> QueryResult[bool]:
        parsed, diagnostics = self._query(EncryptionStatusPayload, "encryption:status")
        return QueryResult(value=bool(parsed.enabled), diagnostics=diagnostics)

    def list_users(self) -> QueryResult[List[str]]:
        parsed, diagnostics = self._query(UserListPayload, "user:list")
        return QueryResult(value=parsed.usernames(), diagnostics=diagnostics)

    def enable(self) -> None:
        self._run("maintenance:mode", "--on")

    def disable(self) -> None:
        self._run("maintenance:mode", "--off")


def build_credentials(paths: HostPaths) -> CredentialSource:
    return FileCredentialSource(paths.db_password_file)


__all__ = [
    "CopyTreeSync",
    "EncryptionStatusPayload",
    "FileCredentialSource",
    "MysqlDatabase",
    "OccConsole",
    "RsyncFileSync",
    "UserListPayload",
    "build_credentials",
    "build_file_sync",
]

"""Fakes for the host collaborators plus a populated fake host."""
from __future__ import annotations

import io
from pathlib import Path
from typing import List, Optional

import pytest

from core.paths import HostPaths
from migration.api import MigrationService
from migration.collaborators import AppStatus, CredentialSource, DatabaseAdmin, MaintenanceControl
from migration.errors import CollaboratorError
from migration.host import CopyTreeSync
from migration.logs import MigrationLogger
from migration.types import QueryResult

CONFIG_TEMPLATE = """<?php
$CONFIG = array (
  'instanceid' => 'oc1234',
  'dbtype' => 'mysql',
  'dbname' => 'nextcloud',
  'dbuser' => 'nextcloud',
  'dbpassword' => '{password}',
  'installed' => true,
);
"""


class RecordingMaintenance(MaintenanceControl):
    def __init__(self, journal: List[str]) -> None:
        self.journal = journal
        self.fail_enable = False
        self.fail_disable = False
        self.enabled = 0
        self.disabled = 0

    def enable(self) -> None:
        if self.fail_enable:
            raise CollaboratorError("application is not running")
        self.enabled += 1
        self.journal.append("maintenance:on")

    def disable(self) -> None:
        self.disabled += 1
        self.journal.append("maintenance:off")
        if self.fail_disable:
            raise CollaboratorError("occ went away")


class RecordingSync(CopyTreeSync):
    def __init__(self, journal: List[str]) -> None:
        self.journal = journal
        self.fail_on: set = set()
        self.calls: List[tuple] = []

    def sync(self, source: Path, dest: Path) -> None:
        self.calls.append((Path(source), Path(dest)))
        self.journal.append(f"sync:{Path(source).name}")
        if Path(source).name in self.fail_on:
            raise CollaboratorError(f"rsync failed for {source}")
        super().sync(Path(source), Path(dest))


class FakeDatabase(DatabaseAdmin):
    def __init__(self, journal: List[str], content: str = "CREATE TABLE oc_users;\n") -> None:
        self.journal = journal
        self.content = content
        self.ready = True
        self.fail_dump = False
        self.fail_load = False
        self.recreated_with: Optional[str] = None

    def wait_until_ready(self, timeout: float) -> None:
        if not self.ready:
            raise CollaboratorError("Database not ready after 0s: connection refused")

    def dump(self, dest: Path) -> None:
        self.journal.append("db:dump")
        if self.fail_dump:
            raise CollaboratorError("Unable to export database: mysqldump failed")
        Path(dest).write_text(self.content, encoding="utf-8")

    def recreate(self, password: str) -> None:
        self.journal.append("db:recreate")
        self.recreated_with = password
        self.content = ""

    def load(self, source: Path) -> None:
        self.journal.append("db:load")
        if self.fail_load:
            raise CollaboratorError("Unable to import database: mysql failed")
        self.content = Path(source).read_text(encoding="utf-8")


class FakeCredentials(CredentialSource):
    def __init__(self, password: str = "target-secret") -> None:
        self.password = password

    def database_password(self) -> str:
        return self.password


class FakeStatus(AppStatus):
    def __init__(self, *, encryption: bool = False, users: Optional[List[str]] = None) -> None:
        self.encryption = encryption
        self.users = list(users or [])
        self.diagnostics: List[str] = []
        self.fail = False

    def encryption_enabled(self) -> QueryResult[bool]:
        if self.fail:
            raise CollaboratorError("occ encryption:status failed")
        return QueryResult(value=self.encryption, diagnostics=list(self.diagnostics))

    def list_users(self) -> QueryResult[List[str]]:
        if self.fail:
            raise CollaboratorError("occ user:list failed")
        return QueryResult(value=list(self.users), diagnostics=list(self.diagnostics))


def make_host_paths(root: Path) -> HostPaths:
    return HostPaths(
        backup_root=root / "common" / "backups",
        apps_dir=root / "current" / "nextcloud" / "extra-apps",
        data_dir=root / "common" / "nextcloud" / "data",
        config_file=root / "current" / "nextcloud" / "config" / "config.php",
        certs_dir=root / "current" / "certs",
        log_dir=root / "common" / "logs",
        db_password_file=root / "current" / "mysql" / "nextcloud_password",
    )


def populate_host(paths: HostPaths, *, password: str = "source-secret", certs: bool = True) -> None:
    (paths.apps_dir / "calendar").mkdir(parents=True)
    (paths.apps_dir / "calendar" / "appinfo.xml").write_text("<info/>", encoding="utf-8")
    (paths.data_dir / "alice" / "files").mkdir(parents=True)
    (paths.data_dir / "alice" / "files" / "notes.txt").write_text("hello", encoding="utf-8")
    (paths.data_dir / "bob" / "files").mkdir(parents=True)
    paths.config_file.parent.mkdir(parents=True)
    paths.config_file.write_text(CONFIG_TEMPLATE.format(password=password), encoding="utf-8")
    if certs:
        (paths.certs_dir / "live").mkdir(parents=True)
        (paths.certs_dir / "live" / "cert.pem").write_text("-----BEGIN CERTIFICATE-----", encoding="utf-8")


class Harness:
    """A fake host wired into a :class:`MigrationService`."""

    def __init__(self, root: Path, *, populate: bool = True) -> None:
        self.journal: List[str] = []
        self.paths = make_host_paths(root)
        if populate:
            populate_host(self.paths)
        self.sync = RecordingSync(self.journal)
        self.database = FakeDatabase(self.journal)
        self.credentials = FakeCredentials()
        self.status = FakeStatus(users=["alice", "bob"])
        self.maintenance = RecordingMaintenance(self.journal)
        self.output = io.StringIO()
        self.logger = MigrationLogger(self.paths.log_dir, stream=self.output)
        self.privileged = True
        self.service = MigrationService(
            settings={"require_root": True},
            paths=self.paths,
            sync=self.sync,
            database=self.database,
            credentials=self.credentials,
            status=self.status,
            maintenance=self.maintenance,
            logger=self.logger,
            is_privileged=lambda: self.privileged,
        )

    @property
    def text(self) -> str:
        return self.output.getvalue()


@pytest.fixture
def harness(tmp_path) -> Harness:
    return Harness(tmp_path / "source")


@pytest.fixture
def target(tmp_path) -> Harness:
    return Harness(tmp_path / "target", populate=False)

"""Public API for export and import runs."""
from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from core.paths import HostPaths, resolve_host_paths

from .collaborators import AppStatus, CredentialSource, DatabaseAdmin, FileSync, MaintenanceControl
from .errors import CollaboratorError, PreconditionError
from .handlers import HandlerContext, build_handlers
from .host import MysqlDatabase, OccConsole, build_credentials, build_file_sync
from .layout import FORMAT_VERSION, BackupLayout
from .logs import MigrationLogger
from .orchestrator import Orchestrator
from .types import ComponentSelection, Direction, RunReport


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


class MigrationService:
    """Coordinate export and import of a deployment.

    Collaborators default to the host implementations built from *settings*;
    any of them can be passed in explicitly.
    """

    def __init__(
        self,
        *,
        settings: Optional[Mapping[str, Any]] = None,
        paths: Optional[HostPaths] = None,
        sync: Optional[FileSync] = None,
        database: Optional[DatabaseAdmin] = None,
        credentials: Optional[CredentialSource] = None,
        status: Optional[AppStatus] = None,
        maintenance: Optional[MaintenanceControl] = None,
        logger: Optional[MigrationLogger] = None,
        is_privileged: Callable[[], bool] = _running_as_root,
    ) -> None:
        self._settings: Dict[str, Any] = dict(settings or {})
        self._paths = paths or resolve_host_paths(self._settings)
        self._logger = logger or MigrationLogger(self._paths.log_dir)
        console = None
        if status is None or maintenance is None:
            console = OccConsole.from_settings(self._settings)
        self._sync = sync or build_file_sync(self._settings)
        self._database = database or MysqlDatabase.from_settings(self._settings)
        self._credentials = credentials or build_credentials(self._paths)
        self._status = status or console
        self._maintenance = maintenance or console
        self._is_privileged = is_privileged

    # ------------------------------------------------------------------
    @property
    def paths(self) -> HostPaths:
        return self._paths

    @property
    def logger(self) -> MigrationLogger:
        return self._logger

    def _wait_timeout(self) -> float:
        raw = self._settings.get("database")
        if isinstance(raw, Mapping) and raw.get("wait_timeout_s") is not None:
            try:
                return float(raw["wait_timeout_s"])
            except (TypeError, ValueError):
                pass
        return 60.0

    def _orchestrator(self, direction: Direction) -> Orchestrator:
        context = HandlerContext(
            paths=self._paths,
            sync=self._sync,
            database=self._database,
            credentials=self._credentials,
            status=self._status,
            logger=self._logger,
        )
        return Orchestrator(direction, build_handlers(context), self._maintenance, self._logger)

    # ------------------------------------------------------------------
    def check_preconditions(self) -> None:
        """Fail before any side effect when the host cannot be migrated."""

        if self._settings.get("require_root", True) and not self._is_privileged():
            raise PreconditionError("This utility needs to run as root")
        self._logger.announce("Waiting for the database")
        try:
            self._database.wait_until_ready(self._wait_timeout())
        except CollaboratorError as exc:
            raise PreconditionError(str(exc)) from exc

    def export(self, selection: ComponentSelection, *, now: Optional[datetime] = None) -> RunReport:
        self.check_preconditions()
        layout = BackupLayout.allocate(self._paths.backup_root, now=now)
        self._logger.info("backup_allocated", path=str(layout.root), format=FORMAT_VERSION)
        return self._orchestrator(Direction.EXPORT).run(selection, layout)

    def import_(self, selection: ComponentSelection, backup_dir: Path) -> RunReport:
        self.check_preconditions()
        layout = BackupLayout.open(backup_dir)
        version = layout.check_format()
        if version is None:
            self._logger.warning(f"{layout.root} has no format stamp; assuming format {FORMAT_VERSION}")
        return self._orchestrator(Direction.IMPORT).run(selection, layout)


__all__ = ["MigrationService"]

"""Drive the selected handlers inside one maintenance window."""
from __future__ import annotations

from typing import Mapping, Optional

from .collaborators import MaintenanceControl
from .errors import ComponentFatal
from .handlers import ComponentHandler
from .layout import BackupLayout
from .lock import MaintenanceLock
from .logs import MigrationLogger
from .types import (
    Component,
    ComponentResult,
    ComponentSelection,
    Direction,
    Outcome,
    RunReport,
    RunState,
)


class Orchestrator:
    """Run handlers in the fixed component order while maintenance mode is held.

    A fatal result stops the run immediately; components that already
    finished keep their effects. Warnings are logged and the run continues.
    """

    def __init__(
        self,
        direction: Direction,
        handlers: Mapping[Component, ComponentHandler],
        maintenance: MaintenanceControl,
        logger: MigrationLogger,
    ) -> None:
        self.direction = direction
        self._handlers = dict(handlers)
        self._maintenance = maintenance
        self._logger = logger
        self.last_report: Optional[RunReport] = None

    # ------------------------------------------------------------------
    def run(self, selection: ComponentSelection, layout: BackupLayout) -> RunReport:
        """Process *selection* against *layout*.

        Raises :class:`LockError` when maintenance mode cannot be entered and
        :class:`ComponentFatal` on the first fatal component. The report of
        the most recent run stays available as ``last_report`` either way.
        """

        report = RunReport(direction=self.direction, backup_dir=layout.root, selection=selection)
        self.last_report = report
        phase = self.direction.value
        self._logger.event(
            event="run_start",
            phase=phase,
            ok=True,
            backup=str(layout.root),
            components=[component.value for component in selection],
        )
        try:
            with MaintenanceLock(self._maintenance, self._logger, phase):
                report.advance(RunState.LOCK_ACQUIRED)
                for component in selection:
                    report.advance(RunState.PROCESSING)
                    result = self._process(component, layout)
                    report.results.append(result)
                    if result.is_fatal:
                        raise ComponentFatal(component, result.detail or "failed")
        except BaseException as exc:
            # a failed acquire never held the lock
            if report.state is not RunState.IDLE:
                report.advance(RunState.LOCK_RELEASED)
            report.advance(RunState.FAILED)
            self._logger.event(event="run_failed", phase=phase, ok=False, error=str(exc) or type(exc).__name__)
            raise
        report.advance(RunState.LOCK_RELEASED)
        report.advance(RunState.DONE)
        self._logger.event(
            event="run_done",
            phase=phase,
            ok=True,
            warnings=[result.component.value for result in report.warnings],
        )
        return report

    def _process(self, component: Component, layout: BackupLayout) -> ComponentResult:
        handler = self._handlers[component]
        self._logger.announce(f"{self.direction.verb} {component.value}", component=component.value)
        result = handler.run(self.direction, layout)
        if result.outcome is Outcome.SUCCESS:
            self._logger.event(event="component_done", phase=self.direction.value, ok=True, component=component.value)
        elif result.outcome is Outcome.SKIPPED:
            self._logger.note(f"{result.detail}, skipping", component=component.value)
        elif result.outcome is Outcome.WARNING:
            self._logger.warning(
                f"{self.direction.verb} {component.value} incomplete: {result.detail}", component=component.value
            )
        else:
            self._logger.error(
                f"Unable to {self.direction.value} {component.value}: {result.detail}", component=component.value
            )
        return result


__all__ = ["Orchestrator"]

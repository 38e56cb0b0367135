"""Maintenance mode as a scoped, always-released resource."""
from __future__ import annotations

import contextlib
import signal
import threading
from typing import Iterator, Sequence

from .collaborators import MaintenanceControl
from .errors import CollaboratorError, LockError, RunInterrupted
from .logs import MigrationLogger

_TRAPPED_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig is not None
)


class MaintenanceLock(contextlib.AbstractContextManager):
    """Hold the application in maintenance mode for the body of a ``with``.

    Entering fails with :class:`LockError` when maintenance mode cannot be
    switched on. Leaving switches it off exactly once on every exit path; a
    failure there is logged and never raised, so it cannot hide the outcome
    of the run.
    """

    def __init__(self, control: MaintenanceControl, logger: MigrationLogger, phase: str) -> None:
        self._control = control
        self._logger = logger
        self._phase = phase
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "MaintenanceLock":
        self._logger.announce("Enabling maintenance mode", phase=self._phase)
        try:
            self._control.enable()
        except (CollaboratorError, OSError) as exc:
            self._logger.event(event="maintenance_on", phase=self._phase, ok=False, error=str(exc))
            raise LockError(f"Unable to enable maintenance mode: {exc}") from exc
        self._held = True
        self._logger.event(event="maintenance_on", phase=self._phase, ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self._held:
            return False
        self._held = False
        self._logger.announce("Disabling maintenance mode", phase=self._phase)
        try:
            self._control.disable()
        except Exception as release_exc:
            self._logger.error(f"Unable to disable maintenance mode: {release_exc}", phase=self._phase)
            self._logger.event(event="maintenance_off", phase=self._phase, ok=False, error=str(release_exc))
        else:
            self._logger.event(event="maintenance_off", phase=self._phase, ok=exc is None)
        return False


def _raise_interrupted(signum, frame) -> None:
    raise RunInterrupted(signum)


@contextlib.contextmanager
def trap_interrupts(signals: Sequence[int] = _TRAPPED_SIGNALS) -> Iterator[None]:
    """Turn termination signals into :class:`RunInterrupted` for the block.

    Only the main thread may install handlers; elsewhere this is a no-op.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _raise_interrupted)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


__all__ = ["MaintenanceLock", "trap_interrupts"]

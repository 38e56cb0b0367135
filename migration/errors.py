"""Error hierarchy for export and import runs."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing guard
    from .types import Component


class MigrationError(RuntimeError):
    """Base exception for migration related failures."""


class UsageError(MigrationError):
    """Bad flags or arguments; raised before any side effect."""


class PreconditionError(MigrationError):
    """The host is not in a state where a run may start."""


class LockError(MigrationError):
    """The application could not be put into maintenance mode."""


class ComponentFatal(MigrationError):
    """A component failed in a way that aborts the remaining components."""

    def __init__(self, component: "Component", detail: str) -> None:
        super().__init__(f"{component.value}: {detail}")
        self.component = component
        self.detail = detail


class RunInterrupted(MigrationError):
    """The process received a termination signal mid-run."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum


class CollaboratorError(MigrationError):
    """Raised by host collaborators (sync, database, status tool)."""


__all__ = [
    "CollaboratorError",
    "ComponentFatal",
    "LockError",
    "MigrationError",
    "PreconditionError",
    "RunInterrupted",
    "UsageError",
]

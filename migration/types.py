"""Common types shared across migration modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Generic, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class Component(str, Enum):
    """One independently selectable unit of migratable state."""

    APPS = "apps"
    DATABASE = "database"
    CONFIG = "config"
    DATA = "data"
    KEYS = "keys"
    CERTS = "certs"

    @property
    def flag(self) -> str:
        return _FLAGS[self]

    @property
    def subpath(self) -> str:
        return _SUBPATHS[self]


_FLAGS = {
    Component.APPS: "a",
    Component.DATABASE: "b",
    Component.CONFIG: "c",
    Component.DATA: "d",
    Component.KEYS: "e",
    Component.CERTS: "f",
}

_SUBPATHS = {
    Component.APPS: "apps",
    Component.DATABASE: "database.sql",
    Component.CONFIG: "config.php",
    Component.DATA: "data",
    Component.KEYS: "keys",
    Component.CERTS: "certs",
}

# Data goes last: it is the largest and nothing after it depends on it.
PROCESSING_ORDER = (
    Component.APPS,
    Component.DATABASE,
    Component.CONFIG,
    Component.KEYS,
    Component.CERTS,
    Component.DATA,
)


class Direction(str, Enum):
    EXPORT = "export"
    IMPORT = "import"

    @property
    def verb(self) -> str:
        return "Exporting" if self is Direction.EXPORT else "Importing"


@dataclass(frozen=True, slots=True)
class ComponentSelection:
    """Immutable set of components chosen for one run."""

    components: FrozenSet[Component]

    @classmethod
    def of(cls, components: Iterable[Component]) -> "ComponentSelection":
        return cls(frozenset(components))

    @classmethod
    def everything(cls) -> "ComponentSelection":
        return cls(frozenset(PROCESSING_ORDER))

    def __contains__(self, component: object) -> bool:
        return component in self.components

    def __iter__(self) -> Iterator[Component]:
        return (component for component in PROCESSING_ORDER if component in self.components)

    def __len__(self) -> int:
        return len(self.components)

    def is_everything(self) -> bool:
        return self.components == frozenset(PROCESSING_ORDER)


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    WARNING = "warning"
    FATAL = "fatal"


@dataclass(slots=True)
class ComponentResult:
    component: Component
    outcome: Outcome
    detail: Optional[str] = None

    @classmethod
    def success(cls, component: Component) -> "ComponentResult":
        return cls(component, Outcome.SUCCESS)

    @classmethod
    def skipped(cls, component: Component, detail: str) -> "ComponentResult":
        return cls(component, Outcome.SKIPPED, detail)

    @classmethod
    def warning(cls, component: Component, detail: str) -> "ComponentResult":
        return cls(component, Outcome.WARNING, detail)

    @classmethod
    def fatal(cls, component: Component, detail: str) -> "ComponentResult":
        return cls(component, Outcome.FATAL, detail)

    @property
    def is_fatal(self) -> bool:
        return self.outcome is Outcome.FATAL


@dataclass(slots=True)
class QueryResult(Generic[T]):
    """Typed answer from the application's status tool plus any stderr chatter."""

    value: T
    diagnostics: List[str] = field(default_factory=list)


@dataclass(slots=True)
class UserKeyRecord:
    username: str
    source: Path
    subpath: str


class RunState(str, Enum):
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    PROCESSING = "processing"
    LOCK_RELEASED = "lock_released"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class RunReport:
    direction: Direction
    backup_dir: Path
    selection: ComponentSelection
    results: List[ComponentResult] = field(default_factory=list)
    state: RunState = RunState.IDLE
    history: List[RunState] = field(default_factory=list)

    def advance(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def ok(self) -> bool:
        return self.state is RunState.DONE

    @property
    def warnings(self) -> List[ComponentResult]:
        return [result for result in self.results if result.outcome is Outcome.WARNING]


__all__ = [
    "Component",
    "ComponentResult",
    "ComponentSelection",
    "Direction",
    "Outcome",
    "PROCESSING_ORDER",
    "QueryResult",
    "RunReport",
    "RunState",
    "UserKeyRecord",
]

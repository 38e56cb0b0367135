"""Interfaces the orchestrators consume; concrete versions live in ``host``."""
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from .types import QueryResult


class FileSync(ABC):
    """Mirror a directory tree, preserving permissions."""

    @abstractmethod
    def sync(self, source: Path, dest: Path) -> None:
        """Copy the contents of *source* into *dest*, creating *dest* if needed."""


class DatabaseAdmin(ABC):
    @abstractmethod
    def wait_until_ready(self, timeout: float) -> None:
        """Block until the server answers; raise ``CollaboratorError`` on timeout."""

    @abstractmethod
    def dump(self, dest: Path) -> None:
        """Write a full logical dump, taken with table locking, to *dest*."""

    @abstractmethod
    def recreate(self, password: str) -> None:
        """Drop and create the database and grant the application account."""

    @abstractmethod
    def load(self, source: Path) -> None:
        """Load a dump produced by :meth:`dump`."""


class CredentialSource(ABC):
    @abstractmethod
    def database_password(self) -> str:
        """Return the live database password of *this* host."""


class AppStatus(ABC):
    @abstractmethod
    def encryption_enabled(self) -> QueryResult[bool]:
        ...

    @abstractmethod
    def list_users(self) -> QueryResult[List[str]]:
        ...


class MaintenanceControl(ABC):
    @abstractmethod
    def enable(self) -> None:
        ...

    @abstractmethod
    def disable(self) -> None:
        ...


__all__ = [
    "AppStatus",
    "CredentialSource",
    "DatabaseAdmin",
    "FileSync",
    "MaintenanceControl",
]

"""Export and import of a deployment for migration between hosts."""
from __future__ import annotations

from .api import MigrationService
from .errors import MigrationError
from .layout import BackupLayout
from .types import Component, ComponentSelection, Direction, RunReport

__all__ = [
    "BackupLayout",
    "Component",
    "ComponentSelection",
    "Direction",
    "MigrationError",
    "MigrationService",
    "RunReport",
]

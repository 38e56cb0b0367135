"""On-disk shape of a backup set."""
from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import PreconditionError
from .types import Component

FORMAT_VERSION = 1
FORMAT_FILENAME = "format"
BACKUP_DIR_MODE = 0o770


def _timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


class BackupLayout:
    """A backup directory and the subpath of every component inside it."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    # ------------------------------------------------------------------
    @classmethod
    def allocate(cls, backup_root: Path, *, now: Optional[datetime] = None) -> "BackupLayout":
        """Create a fresh, stamped backup directory under *backup_root*.

        The format stamp is written before any component data so that a
        partially written backup can still be told apart from a missing one.
        """

        backup_root = Path(backup_root)
        try:
            backup_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PreconditionError(f"Unable to create backup root {backup_root}: {exc}") from exc
        target = backup_root / _timestamp(now)
        try:
            target.mkdir(mode=BACKUP_DIR_MODE)
        except FileExistsError as exc:
            raise PreconditionError(f"Backup directory {target} already exists") from exc
        except OSError as exc:
            raise PreconditionError(f"Unable to create backup directory {target}: {exc}") from exc
        layout = cls(target)
        try:
            # mkdir's mode is filtered through the umask
            os.chmod(target, BACKUP_DIR_MODE)
            layout.format_path.write_text(f"{FORMAT_VERSION}\n", encoding="utf-8")
        except OSError as exc:
            raise PreconditionError(f"Unable to stamp backup directory {target}: {exc}") from exc
        return layout

    @classmethod
    def open(cls, path: Path) -> "BackupLayout":
        path = Path(path).expanduser()
        if not path.exists():
            raise PreconditionError(f"Backup directory {path} does not exist")
        if not path.is_dir():
            raise PreconditionError(f"{path} is not a directory")
        return cls(path.resolve())

    # ------------------------------------------------------------------
    @property
    def root(self) -> Path:
        return self._root

    @property
    def format_path(self) -> Path:
        return self._root / FORMAT_FILENAME

    def path_for(self, component: Component) -> Path:
        return self._root / component.subpath

    def has(self, component: Component) -> bool:
        return self.path_for(component).exists()

    def read_format(self) -> Optional[int]:
        """Return the stamped format version, or ``None`` when unstamped."""
        if not self.format_path.exists():
            return None
        text = self.format_path.read_text(encoding="utf-8").strip()
        try:
            return int(text)
        except ValueError as exc:
            raise PreconditionError(f"Unreadable format stamp in {self.format_path}: {text!r}") from exc

    def check_format(self) -> Optional[int]:
        """Validate the stamp; newer formats than this tool knows are refused."""
        version = self.read_format()
        if version is not None and (version < 1 or version > FORMAT_VERSION):
            raise PreconditionError(
                f"Backup format {version} is not supported (this tool reads format {FORMAT_VERSION})"
            )
        return version

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"BackupLayout({str(self._root)!r})"


__all__ = ["BACKUP_DIR_MODE", "BackupLayout", "FORMAT_VERSION"]

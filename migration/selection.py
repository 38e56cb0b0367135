"""Turn command line flags into the set of components to process."""
from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, NoReturn, Optional, Sequence

from .errors import UsageError
from .types import PROCESSING_ORDER, Component, ComponentSelection, Direction

_BY_FLAG = {component.flag: component for component in PROCESSING_ORDER}

_HELP = {
    Component.APPS: "installed apps",
    Component.DATABASE: "database",
    Component.CONFIG: "config",
    Component.DATA: "data",
    Component.KEYS: "encryption keys",
    Component.CERTS: "TLS certificates",
}

_DESCRIPTION = {
    Direction.EXPORT: "Export data suitable for migrating servers. By default this includes "
    "the apps, database, config, data, encryption keys and certificates.",
    Direction.IMPORT: "Import data exported from another server. By default this includes "
    "the apps, database, config, data, encryption keys and certificates.",
}


class HelpRequested(Exception):
    """Raised instead of exiting when ``-h`` was given."""


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    selection: ComponentSelection
    backup_dir: Optional[Path] = None


def resolve_selection(
    flags: Iterable[str],
    mode: Direction,
    positionals: Sequence[str] = (),
) -> ComponentSelection:
    """Return the components named by *flags*; no flags means all six.

    Import needs exactly one positional argument (the backup directory) and
    export accepts none. The "all" default depends only on whether a
    component flag was given, never on the argument count.
    """

    chosen = set()
    for flag in flags:
        letter = flag.lstrip("-")
        component = _BY_FLAG.get(letter)
        if component is None:
            raise UsageError(f"invalid option -- '{letter}'")
        chosen.add(component)

    if mode is Direction.IMPORT:
        if not positionals:
            raise UsageError("missing backup directory")
        if len(positionals) > 1:
            raise UsageError(f"unexpected arguments: {' '.join(positionals[1:])}")
    elif positionals:
        raise UsageError(f"unexpected arguments: {' '.join(positionals)}")

    if not chosen:
        return ComponentSelection.everything()
    return ComponentSelection.of(chosen)


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        raise UsageError(message)

    def exit(self, status: int = 0, message: Optional[str] = None) -> NoReturn:
        if message:
            self._print_message(message, sys.stderr)
        if status == 0:
            raise HelpRequested()
        raise UsageError(message or f"exit status {status}")


def build_parser(mode: Direction, prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = _Parser(
        prog=prog or f"appmigrate-{mode.value}",
        description=_DESCRIPTION[mode],
    )
    for component in PROCESSING_ORDER:
        parser.add_argument(
            f"-{component.flag}",
            dest=component.value,
            action="store_true",
            help=f"{mode.value.capitalize()} the {_HELP[component]}",
        )
    if mode is Direction.IMPORT:
        parser.add_argument(
            "backup_dir",
            nargs="*",
            metavar="<backup-dir>",
            help="Directory produced by a previous export",
        )
    return parser


def parse_command_line(argv: Optional[Sequence[str]], mode: Direction) -> ParsedCommand:
    """Parse *argv*; raises :class:`HelpRequested` or :class:`UsageError`."""

    parser = build_parser(mode)
    args = parser.parse_args(argv)
    flags = [component.flag for component in PROCESSING_ORDER if getattr(args, component.value)]
    positionals = list(getattr(args, "backup_dir", None) or [])
    try:
        selection = resolve_selection(flags, mode, positionals)
    except UsageError:
        parser.print_usage(sys.stderr)
        raise
    backup_dir = Path(positionals[0]) if positionals else None
    return ParsedCommand(selection=selection, backup_dir=backup_dir)


__all__ = [
    "HelpRequested",
    "ParsedCommand",
    "build_parser",
    "parse_command_line",
    "resolve_selection",
]

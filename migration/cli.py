"""Command line entry points: ``appmigrate-export`` and ``appmigrate-import``."""
from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from core.logging_utils import configure_json_logging
from core.paths import resolve_host_paths
from core.settings import load_settings

from .api import MigrationService
from .errors import CollaboratorError, ComponentFatal, MigrationError, PreconditionError, UsageError
from .lock import trap_interrupts
from .logs import MigrationLogger
from .selection import HelpRequested, parse_command_line
from .types import Direction

LOGGER = logging.getLogger("appmigrate.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def _build_service() -> MigrationService:
    settings = load_settings()
    paths = resolve_host_paths(settings)
    try:
        configure_json_logging(paths.log_dir)
    except OSError as exc:
        LOGGER.warning("File logging unavailable: %s", exc)
    try:
        return MigrationService(settings=settings, paths=paths)
    except (CollaboratorError, TypeError, ValueError) as exc:
        raise PreconditionError(f"Invalid settings: {exc}") from exc


def run(
    direction: Direction,
    argv: Optional[Sequence[str]] = None,
    *,
    service: Optional[MigrationService] = None,
) -> int:
    prog = f"appmigrate-{direction.value}"
    try:
        command = parse_command_line(argv, direction)
    except HelpRequested:
        return EXIT_OK
    except UsageError as exc:
        print(f"{prog}: {exc}", file=sys.stderr)
        return EXIT_FAILED

    if service is None:
        try:
            service = _build_service()
        except MigrationError as exc:
            MigrationLogger().error(str(exc))
            return EXIT_FAILED
    logger = service.logger
    try:
        with trap_interrupts():
            if direction is Direction.EXPORT:
                report = service.export(command.selection)
            else:
                report = service.import_(command.selection, command.backup_dir)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_INTERRUPTED
    except ComponentFatal:
        # already reported by the orchestrator
        return EXIT_FAILED
    except MigrationError as exc:
        logger.error(str(exc))
        return EXIT_FAILED

    if direction is Direction.EXPORT:
        logger.note("Successfully exported:")
        print(report.backup_dir, flush=True)
    else:
        logger.note(f"Successfully imported {report.backup_dir}")
    return EXIT_OK


def export_main(argv: Optional[Sequence[str]] = None) -> int:
    return run(Direction.EXPORT, argv)


def import_main(argv: Optional[Sequence[str]] = None) -> int:
    return run(Direction.IMPORT, argv)


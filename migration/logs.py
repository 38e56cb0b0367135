"""Structured logging helpers for export and import runs."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, TextIO

LOGGER = logging.getLogger("appmigrate.migration")


class MigrationLogger:
    """Write structured JSONL entries and one-line operator messages.

    Every call records an event in ``<log_dir>/migration.jsonl``. The
    operator-facing helpers also print a short line to *stream*: warnings are
    prefixed with ``WARNING:`` and aborts with ``ERROR:`` so the two can be
    told apart with grep.
    """

    def __init__(self, log_dir: Optional[Path] = None, *, stream: Optional[TextIO] = None) -> None:
        self._log_path: Optional[Path] = None
        if log_dir is not None:
            log_path = Path(log_dir) / "migration.jsonl"
            try:
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                LOGGER.warning("Structured log disabled, cannot create %s: %s", log_path.parent, exc)
            else:
                self._log_path = log_path
        self._stream = stream
        self._lock = Lock()

    # ------------------------------------------------------------------
    def _write(self, payload: Dict[str, Any], *, level: int) -> None:
        payload.setdefault("ts", datetime.now(timezone.utc).isoformat())
        line = json.dumps(payload, sort_keys=True, default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        LOGGER.log(level, "%s", line)

    def _say(self, text: str) -> None:
        stream = self._stream or sys.stdout
        print(text, file=stream, flush=True)

    # ------------------------------------------------------------------
    def event(self, *, event: str, phase: str, ok: bool, **extra: Any) -> None:
        payload = {
            "event": event,
            "phase": phase,
            "ok": bool(ok),
        }
        if extra:
            payload.update(extra)
        level = logging.INFO if ok else logging.ERROR
        self._write(payload, level=level)

    def info(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": True}, level=logging.INFO)

    # ------------------------------------------------------------------
    def announce(self, message: str, **extra: Any) -> None:
        """Start of a step, e.g. ``Exporting database...``."""
        self._say(f"{message}...")
        self._write({"event": "announce", "message": message, **extra, "ok": True}, level=logging.INFO)

    def note(self, message: str, **extra: Any) -> None:
        self._say(message)
        self._write({"event": "note", "message": message, **extra, "ok": True}, level=logging.INFO)

    def warning(self, message: str, **extra: Any) -> None:
        self._say(f"WARNING: {message}")
        self._write({"event": "warning", "message": message, **extra, "ok": False}, level=logging.WARNING)

    def error(self, message: str, **extra: Any) -> None:
        self._say(f"ERROR: {message}")
        self._write({"event": "error", "message": message, **extra, "ok": False}, level=logging.ERROR)


__all__ = ["MigrationLogger"]

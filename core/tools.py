from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Mapping, Optional, Sequence

LOGGER = logging.getLogger("appmigrate.tools")


class ToolError(RuntimeError):
    """Raised when an external helper is missing or exits unsuccessfully."""


class ToolDiscoveryError(ToolError):
    """Raised when a required external helper cannot be located."""


@dataclass(slots=True)
class ToolResult:
    """Captured outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def stderr_lines(self) -> list[str]:
        return [line.strip() for line in self.stderr.splitlines() if line.strip()]


def run_tool(
    cmd: Sequence[str],
    *,
    stdin: Optional[IO[bytes]] = None,
    input_data: Optional[bytes] = None,
    stdout: Optional[IO[bytes]] = None,
    env: Optional[Mapping[str, str]] = None,
    check: bool = True,
) -> ToolResult:
    """Run *cmd* and capture its output.

    When *stdout* is given the command writes straight into that handle (used
    for dumps) and ``ToolResult.stdout`` is empty. A non-zero exit raises
    :class:`ToolError` carrying the last stderr line unless *check* is false.
    """

    args = [str(part) for part in cmd]
    LOGGER.debug("run_tool: %s", " ".join(args))
    try:
        completed = subprocess.run(
            args,
            stdin=stdin if input_data is None else None,
            input=input_data,
            stdout=stdout if stdout is not None else subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=dict(env) if env is not None else None,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ToolDiscoveryError(f"Unable to locate executable: {args[0]}") from exc
    except OSError as exc:
        raise ToolError(f"{args[0]} could not be started: {exc}") from exc

    out = completed.stdout.decode("utf-8", "replace") if isinstance(completed.stdout, bytes) else ""
    err = (completed.stderr or b"").decode("utf-8", "replace")
    result = ToolResult(args=args, returncode=completed.returncode, stdout=out, stderr=err)
    if check and completed.returncode != 0:
        lines = result.stderr_lines
        reason = lines[-1] if lines else f"exit status {completed.returncode}"
        raise ToolError(f"{Path(args[0]).name} failed: {reason}")
    return result


__all__ = [
    "ToolDiscoveryError",
    "ToolError",
    "ToolResult",
    "run_tool",
]

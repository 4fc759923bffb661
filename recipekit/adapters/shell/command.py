"""
Command runner — the single place recipekit starts child processes.

Build steps and verification probes both go through ``run_command``.
It captures combined output, enforces a timeout by killing the whole
process group, and reports the outcome as a ``CommandResult`` instead
of raising: callers decide which failures are fatal.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Outcome of one child process."""

    command: list[str]
    returncode: int | None = None
    output: str = ""                 # stdout and stderr, interleaved
    duration_ms: int = 0
    timed_out: bool = False
    error: str | None = None         # set when the process could not start
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out and self.returncode == 0

    def describe_failure(self) -> str:
        if self.error:
            return self.error
        if self.timed_out:
            return f"timed out after {self.metadata.get('timeout', '?')}s"
        return f"exited with code {self.returncode}"


CommandRunner = Callable[..., CommandResult]


def run_command(
    command: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout: int = 300,
) -> CommandResult:
    """Run ``command`` without a shell and capture its output.

    Args:
        command: argv list; ``command[0]`` is resolved on ``env["PATH"]``.
        cwd: Working directory.
        env: Full environment for the child (default: inherit).
        timeout: Seconds before the process group is killed.

    Returns:
        CommandResult; never raises for process-level failures.
    """
    logger.debug("Executing: %s (cwd=%s)", command, cwd)
    start = time.monotonic()

    try:
        proc = subprocess.Popen(
            command,
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        return CommandResult(
            command=command,
            error=f"Cannot execute {command[0]}: {e.strerror or e}",
        )

    try:
        output, _ = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        output, _ = proc.communicate()
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.warning("Command timed out after %ss: %s", timeout, command)
        return CommandResult(
            command=command,
            returncode=proc.returncode,
            output=output or "",
            duration_ms=elapsed_ms,
            timed_out=True,
            metadata={"timeout": str(timeout)},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.debug("→ exit %s in %dms", proc.returncode, elapsed_ms)
    return CommandResult(
        command=command,
        returncode=proc.returncode,
        output=output or "",
        duration_ms=elapsed_ms,
    )


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the child and everything it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()

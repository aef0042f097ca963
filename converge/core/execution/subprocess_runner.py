"""
Core subprocess runner.

The only place ``subprocess.run`` is called, for detection queries and
install actions alike.  Output is captured combined (stdout and stderr
interleaved) so a failure reads as it would have in a terminal.  Bytes
that are not UTF-8 are replaced rather than raising.

No timeout is imposed by default: long downloads run to completion
or to the external process's own failure.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

# Keep the tail of the output; installers can be very chatty.
_OUTPUT_TAIL = 4000

# Exit code reported when the program itself cannot be started.
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Exit code and captured combined output of one command."""

    exit_code: int
    output: str = ""
    command: list[str] = field(default_factory=list)
    elapsed_ms: int = 0
    # Set when the action did not apply; ``output`` says why.
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)


class CommandRunner(Protocol):
    """Anything that can run a command list and return a CommandResult."""

    def __call__(
        self,
        cmd: list[str],
        *,
        needs_sudo: bool = False,
        env_overrides: dict[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


def run_command(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command, capturing combined output.

    Args:
        cmd: Command list for ``subprocess.run()``.
        needs_sudo: Prefix with ``sudo`` unless already root. sudo
            prompts on the controlling terminal, not through our pipe.
        env_overrides: Extra env vars layered over ``os.environ``.
        cwd: Working directory for the command.
        timeout: Seconds before giving up (None = wait indefinitely).

    Returns:
        CommandResult. Never raises for command failure; a missing
        program is reported as exit code 127.
    """
    if needs_sudo and os.geteuid() != 0:
        cmd = ["sudo"] + cmd

    env = None
    if env_overrides:
        env = os.environ.copy()
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    logger.debug("Executing: %s", shlex.join(cmd))
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            encoding="utf-8",
            errors="replace",
            env=env,
            cwd=cwd,
            timeout=timeout,
        )
    except FileNotFoundError:
        return CommandResult(
            exit_code=EXIT_NOT_FOUND,
            output=f"{cmd[0]}: command not found",
            command=cmd,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output or ""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return CommandResult(
            exit_code=124,
            output=output[-_OUTPUT_TAIL:] + f"\nCommand timed out ({timeout}s)",
            command=cmd,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
    except OSError as e:
        logger.error("Subprocess error: %s: %s", shlex.join(cmd), e)
        return CommandResult(exit_code=126, output=str(e), command=cmd)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = (result.stdout or "")[-_OUTPUT_TAIL:]
    if result.returncode != 0:
        logger.debug("Command exited %d: %s", result.returncode, shlex.join(cmd))
    return CommandResult(
        exit_code=result.returncode,
        output=output,
        command=cmd,
        elapsed_ms=elapsed_ms,
    )


def shell_command(script: str) -> list[str]:
    """Wrap a shell pipeline (e.g. ``curl ... | bash``) with pipefail."""
    return ["bash", "-c", f"set -o pipefail; {script}"]

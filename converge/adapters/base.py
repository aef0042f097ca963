"""
Backend base — the contract between the engine and installers.

Every source kind (system package, cask, language package, binary
download, git clone, generated file) is handled by a backend that can
answer two read-only questions and perform two actions:

    query_presence(unit) -> Presence        (read-only)
    query_version(unit)  -> str | None      (read-only)
    install(unit)        -> CommandResult   (side effects)
    upgrade(unit)        -> CommandResult   (side effects)

Queries may raise ``DetectionError`` when they cannot answer; the
detector turns that into "absent" plus a warning.  Actions never raise
for ordinary failure: the exit code and captured output are returned.
"""

from __future__ import annotations

import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from converge.core.detection.version import extract_version
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import (
    EXIT_NOT_FOUND,
    CommandResult,
    CommandRunner,
    run_command,
)
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

# Where installers drop binaries that may not be on this process's PATH yet.
EXTRA_BIN_DIRS: tuple[str, ...] = (
    "~/.local/bin",
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "~/go/bin",
    "~/.cargo/bin",
)


def find_binary(name: str, extra_dirs: tuple[str, ...] = EXTRA_BIN_DIRS) -> str | None:
    """Locate an executable on PATH or in the usual install locations."""
    found = shutil.which(name)
    if found:
        return found
    for directory in extra_dirs:
        candidate = Path(directory).expanduser() / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


class Backend(ABC):
    """Abstract base class for all installer backends.

    To add a new backend:
        1. Subclass Backend, set ``kind`` and ``managers``
        2. Implement query_presence and install
        3. Register it in ``converge.adapters.registry.default_registry``
    """

    kind: ClassVar[SourceKind]
    managers: ClassVar[tuple[str, ...]] = ("",)

    def __init__(self, runner: CommandRunner | None = None):
        self._run: CommandRunner = runner or run_command

    @property
    def name(self) -> str:
        return f"{self.kind}:{self.managers[0] or 'default'}"

    def is_available(self) -> bool:
        """Whether the underlying tool exists on this machine."""
        return True

    # ── Queries (read-only) ──────────────────────────────────────

    @abstractmethod
    def query_presence(self, unit: Unit) -> Presence:
        """Report whether the unit exists on the machine."""

    def query_version(self, unit: Unit) -> str | None:
        """Installed version, via ``version_command`` or ``binary --version``."""
        cmd = list(unit.version_command)
        if not cmd and unit.binary:
            path = find_binary(unit.binary)
            if path is None:
                return None
            cmd = [path, "--version"]
        if not cmd:
            return None
        result = self._run(cmd)
        if result.exit_code == EXIT_NOT_FOUND:
            return None
        if not result.ok:
            raise DetectionError(
                f"Version check exited {result.exit_code}: {result.command_line}"
            )
        return extract_version(result.output, unit.version_pattern)

    # ── Actions ──────────────────────────────────────────────────

    @abstractmethod
    def install(self, unit: Unit) -> CommandResult:
        """Install the unit."""

    def upgrade(self, unit: Unit) -> CommandResult:
        """Bring a stale unit up to date (default: install again)."""
        return self.install(unit)

    # ── Helpers ──────────────────────────────────────────────────

    def _run_steps(self, *steps: tuple[list[str], bool]) -> CommandResult:
        """Run ``(cmd, needs_sudo)`` steps in order, stopping at the first failure.

        The returned result carries the combined output of every step run.
        """
        outputs: list[str] = []
        last = CommandResult(exit_code=0)
        for cmd, needs_sudo in steps:
            last = self._run(cmd, needs_sudo=needs_sudo)
            if last.output:
                outputs.append(last.output.rstrip())
            if not last.ok:
                break
        return CommandResult(
            exit_code=last.exit_code,
            output="\n".join(outputs),
            command=last.command,
            elapsed_ms=last.elapsed_ms,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"

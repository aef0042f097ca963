"""
Account settings backends — the user's login shell and git's GitHub
credential helper.

Neither installs software; both change per-user settings that the
setup scripts used to poke by hand (``chsh``, ``gh auth setup-git``).
"""

from __future__ import annotations

import getpass
import logging
import os
import pwd
import shlex
from pathlib import Path

from converge.adapters.base import Backend, find_binary
from converge.adapters.system_package import find_brew
from converge.core.errors import DetectionError, InstallError
from converge.core.execution.subprocess_runner import (
    EXIT_NOT_FOUND,
    CommandResult,
    CommandRunner,
    shell_command,
)
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

logger = logging.getLogger(__name__)


def current_login_shell() -> str:
    """Login shell recorded in the user database for this user."""
    return pwd.getpwuid(os.getuid()).pw_shell


class LoginShellBackend(Backend):
    """Make ``unit.package`` (e.g. ``zsh``) the user's login shell.

    The shell binary is Homebrew's copy when brew is installed, otherwise
    the one on PATH; ``unit.dest`` pins an explicit path.  A shell that
    is missing from ``/etc/shells`` is appended first, since ``chsh``
    refuses unlisted shells.
    """

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("login-shell",)

    SHELLS_FILE = Path("/etc/shells")

    def __init__(self, runner: CommandRunner | None = None, shells_file: Path | None = None):
        super().__init__(runner)
        self._shells_file = shells_file or self.SHELLS_FILE

    def shell_path(self, unit: Unit) -> str | None:
        if unit.dest:
            return unit.dest if Path(unit.dest).is_file() else None
        brew = find_brew()
        if brew:
            candidate = Path(brew).parent / unit.package_name
            if candidate.is_file():
                return str(candidate)
        return find_binary(unit.package_name, extra_dirs=())

    def listed_shells(self) -> set[str]:
        try:
            lines = self._shells_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("Could not read %s: %s", self._shells_file, e)
            return set()
        return {line.strip() for line in lines if line.strip() and not line.startswith("#")}

    def query_presence(self, unit: Unit) -> Presence:
        target = self.shell_path(unit)
        if target is None:
            return Presence.ABSENT
        try:
            current = current_login_shell()
        except KeyError as e:
            raise DetectionError(f"No user database entry for uid {os.getuid()}") from e
        if os.path.realpath(current) == os.path.realpath(target):
            return Presence.CURRENT
        return Presence.ABSENT

    def install(self, unit: Unit) -> CommandResult:
        target = self.shell_path(unit)
        if target is None:
            raise InstallError(f"{unit.package_name} is not installed; cannot make it the login shell")
        steps: list[tuple[list[str], bool]] = []
        if target not in self.listed_shells():
            logger.info("Adding %s to %s", target, self._shells_file)
            steps.append((
                shell_command(f"echo {shlex.quote(target)} >> {shlex.quote(str(self._shells_file))}"),
                True,
            ))
        steps.append((["chsh", "-s", target, getpass.getuser()], True))
        return self._run_steps(*steps)


class GhCredentialBackend(Backend):
    """Route git's GitHub credentials through the GitHub CLI.

    ``unit.package`` is the host (default ``github.com``).  Until
    ``gh auth login`` has been run there is nothing to set up, so the
    install is skipped with a hint instead of failing the run.
    """

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("gh-credential",)

    DEFAULT_HOST = "github.com"

    def _host(self, unit: Unit) -> str:
        return unit.package or self.DEFAULT_HOST

    def is_available(self) -> bool:
        return find_binary("gh") is not None

    def query_presence(self, unit: Unit) -> Presence:
        key = f"credential.https://{self._host(unit)}.helper"
        result = self._run(["git", "config", "--global", "--get-all", key])
        if result.exit_code == EXIT_NOT_FOUND:
            raise DetectionError("git is not available")
        # git config exits 1 when the key is unset.
        if "gh auth git-credential" in result.output:
            return Presence.CURRENT
        return Presence.ABSENT

    def install(self, unit: Unit) -> CommandResult:
        host = self._host(unit)
        gh = find_binary("gh") or "gh"
        status = self._run([gh, "auth", "status", "--hostname", host])
        if status.exit_code == EXIT_NOT_FOUND:
            return status
        if not status.ok:
            return CommandResult(
                exit_code=0,
                output=f"GitHub CLI is not signed in to {host}; run 'gh auth login', then re-run",
                command=status.command,
                skipped=True,
            )
        return self._run([gh, "auth", "setup-git", "--hostname", host])

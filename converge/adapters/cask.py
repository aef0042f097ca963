"""
Application store backends — Homebrew casks and snaps.

A cask counts as present if brew knows about it OR the app bundle is
already in an Applications folder (apps installed by hand or by a
vendor updater must not be reinstalled over).
"""

from __future__ import annotations

from pathlib import Path

from converge.adapters.base import Backend, find_binary
from converge.adapters.system_package import find_brew
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import (
    EXIT_NOT_FOUND,
    CommandResult,
    CommandRunner,
)
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

# Cask name → .app bundle name where title-casing gets it wrong.
CASK_APP_NAMES: dict[str, str] = {
    "google-chrome": "Google Chrome",
    "appcleaner": "AppCleaner",
    "visual-studio-code": "Visual Studio Code",
    "iterm2": "iTerm",
    "1password": "1Password",
    "linear-linear": "Linear",
}

DEFAULT_APP_DIRS = ("/Applications", "~/Applications")


def app_name_for_cask(cask: str) -> str:
    """Best guess at the .app name a cask installs (without ``.app``)."""
    if cask in CASK_APP_NAMES:
        return CASK_APP_NAMES[cask]
    return " ".join(word[:1].upper() + word[1:] for word in cask.split("-"))


class BrewCaskBackend(Backend):
    """Desktop applications via ``brew install --cask``."""

    kind = SourceKind.CASK
    managers = ("brew",)

    def __init__(
        self,
        runner: CommandRunner | None = None,
        app_dirs: tuple[str, ...] = DEFAULT_APP_DIRS,
    ):
        super().__init__(runner)
        self._app_dirs = app_dirs

    def is_available(self) -> bool:
        return find_brew() is not None

    def _app_installed(self, unit: Unit) -> bool:
        app = f"{app_name_for_cask(unit.package_name)}.app"
        return any((Path(d).expanduser() / app).is_dir() for d in self._app_dirs)

    def query_presence(self, unit: Unit) -> Presence:
        brew = find_brew()
        if brew is not None:
            result = self._run([brew, "list", "--cask", unit.package_name])
            if result.ok:
                return Presence.CURRENT
        if self._app_installed(unit):
            return Presence.CURRENT
        return Presence.ABSENT

    def install(self, unit: Unit) -> CommandResult:
        brew = find_brew() or "brew"
        return self._run([brew, "install", "--cask", *unit.args, unit.package_name])

    def upgrade(self, unit: Unit) -> CommandResult:
        brew = find_brew() or "brew"
        return self._run([brew, "upgrade", "--cask", unit.package_name])


class SnapBackend(Backend):
    """Snap store packages (``snap install``)."""

    kind = SourceKind.CASK
    managers = ("snap",)

    def is_available(self) -> bool:
        return find_binary("snap", extra_dirs=()) is not None

    def query_presence(self, unit: Unit) -> Presence:
        result = self._run(["snap", "list", unit.package_name])
        if result.ok:
            return Presence.CURRENT
        if result.exit_code == EXIT_NOT_FOUND:
            raise DetectionError("snap is not available")
        return Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run(["snap", "list", unit.package_name])
        if not result.ok:
            return None
        # Header line, then "<name>  <version>  <rev> ..."
        for line in result.output.splitlines()[1:]:
            fields = line.split()
            if len(fields) >= 2 and fields[0] == unit.package_name:
                return fields[1]
        return None

    def install(self, unit: Unit) -> CommandResult:
        return self._run(["snap", "install", unit.package_name, *unit.args], needs_sudo=True)

    def upgrade(self, unit: Unit) -> CommandResult:
        return self._run(["snap", "refresh", unit.package_name], needs_sudo=True)

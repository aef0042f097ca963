"""
System package backends — apt, Homebrew formulae, macOS system components.

Presence comes from the package database (``dpkg-query``,
``brew list``), never from partially running an installer.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from converge.adapters.base import Backend, find_binary
from converge.core.detection.version import extract_version
from converge.core.errors import DetectionError, InstallError
from converge.core.execution.subprocess_runner import (
    EXIT_NOT_FOUND,
    CommandResult,
    CommandRunner,
)
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

logger = logging.getLogger(__name__)

# Homebrew lives under different prefixes on Apple Silicon and Intel.
BREW_CANDIDATES = ("/opt/homebrew/bin/brew", "/usr/local/bin/brew")


def find_brew() -> str | None:
    """Locate the brew executable even before shellenv has been sourced."""
    found = find_binary("brew", extra_dirs=())
    if found:
        return found
    for candidate in BREW_CANDIDATES:
        if Path(candidate).is_file():
            return candidate
    return None


class AptBackend(Backend):
    """Debian/Ubuntu packages via dpkg-query and apt-get."""

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("apt",)

    _ENV = {"DEBIAN_FRONTEND": "noninteractive"}

    def __init__(self, runner: CommandRunner | None = None):
        super().__init__(runner)
        self._lists_refreshed = False

    def is_available(self) -> bool:
        return find_binary("apt-get", extra_dirs=()) is not None

    def query_presence(self, unit: Unit) -> Presence:
        result = self._run(["dpkg-query", "-W", "-f=${Status}", unit.package_name])
        if result.ok:
            if "install ok installed" in result.output:
                return Presence.CURRENT
            return Presence.ABSENT
        if result.exit_code == 1:
            # "no packages found matching ..."
            return Presence.ABSENT
        if result.exit_code == EXIT_NOT_FOUND:
            raise DetectionError("dpkg-query is not available")
        raise DetectionError(
            f"dpkg-query exited {result.exit_code}: {result.output.strip()[:200]}"
        )

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run(["dpkg-query", "-W", "-f=${Version}", unit.package_name])
        if not result.ok:
            return None
        return extract_version(result.output, unit.version_pattern)

    def _refresh_lists(self) -> CommandResult | None:
        """``apt-get update`` once per process, before the first install."""
        if self._lists_refreshed:
            return None
        logger.info("Refreshing apt package lists")
        result = self._run(["apt-get", "update"], needs_sudo=True, env_overrides=self._ENV)
        if result.ok:
            self._lists_refreshed = True
        return result

    def install(self, unit: Unit) -> CommandResult:
        refresh = self._refresh_lists()
        if refresh is not None and not refresh.ok:
            return refresh
        return self._run(
            ["apt-get", "install", "-y", *unit.args, unit.package_name],
            needs_sudo=True,
            env_overrides={**self._ENV, **unit.env},
        )

    def upgrade(self, unit: Unit) -> CommandResult:
        refresh = self._refresh_lists()
        if refresh is not None and not refresh.ok:
            return refresh
        return self._run(
            ["apt-get", "install", "-y", "--only-upgrade", unit.package_name],
            needs_sudo=True,
            env_overrides={**self._ENV, **unit.env},
        )


class BrewFormulaBackend(Backend):
    """Homebrew formulae (``brew install``)."""

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("brew",)

    def is_available(self) -> bool:
        return find_brew() is not None

    def _brew(self) -> str:
        brew = find_brew()
        if brew is None:
            raise DetectionError("Homebrew is not installed")
        return brew

    def query_presence(self, unit: Unit) -> Presence:
        result = self._run([self._brew(), "list", "--formula", unit.package_name])
        return Presence.CURRENT if result.ok else Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run([self._brew(), "list", "--versions", unit.package_name])
        if not result.ok:
            return None
        return extract_version(result.output, unit.version_pattern)

    def install(self, unit: Unit) -> CommandResult:
        brew = find_brew() or "brew"
        return self._run([brew, "install", *unit.args, unit.package_name])

    def upgrade(self, unit: Unit) -> CommandResult:
        brew = find_brew() or "brew"
        return self._run([brew, "upgrade", unit.package_name])


class MacSystemBackend(Backend):
    """Apple-provided components: Xcode Command Line Tools and Rosetta 2.

    ``unit.package`` selects the component: ``xcode-clt`` or ``rosetta``.
    """

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("macos",)

    # Seconds between checks while Apple's CLT installer dialog is open.
    POLL_INTERVAL = 5.0

    def __init__(
        self,
        runner: CommandRunner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(runner)
        self._sleep = sleep

    def query_presence(self, unit: Unit) -> Presence:
        component = unit.package_name
        if component == "xcode-clt":
            result = self._run(["xcode-select", "--print-path"])
            if result.exit_code == EXIT_NOT_FOUND:
                raise DetectionError("xcode-select is not available")
            return Presence.CURRENT if result.ok else Presence.ABSENT
        if component == "rosetta":
            result = self._run(["arch", "-x86_64", "/usr/bin/true"])
            return Presence.CURRENT if result.ok else Presence.ABSENT
        raise DetectionError(f"Unknown macOS component: {component}")

    def install(self, unit: Unit) -> CommandResult:
        component = unit.package_name
        if component == "xcode-clt":
            return self._install_xcode_clt()
        if component == "rosetta":
            return self._run(
                ["softwareupdate", "--install-rosetta", "--agree-to-license"],
                needs_sudo=True,
            )
        raise InstallError(f"Unknown macOS component: {component}")

    def _install_xcode_clt(self) -> CommandResult:
        """Open Apple's installer dialog, then wait until the tools exist.

        ``xcode-select --install`` returns as soon as the dialog is shown.
        There is no upper bound on the wait: the user may take a while.
        """
        trigger = self._run(["xcode-select", "--install"])
        if trigger.exit_code == EXIT_NOT_FOUND:
            return trigger
        logger.info("Waiting for the Command Line Tools installer to finish")
        checks = 0
        while True:
            result = self._run(["xcode-select", "--print-path"])
            checks += 1
            if result.ok:
                logger.info("Command Line Tools installed at %s", result.output.strip())
                return result
            if checks == 1 and not trigger.ok:
                # No dialog was opened and nothing is installed.
                return trigger
            self._sleep(self.POLL_INTERVAL)

    def upgrade(self, unit: Unit) -> CommandResult:
        if unit.package_name == "xcode-clt":
            return self._run(["softwareupdate", "--install", "--all"], needs_sudo=True)
        return self.install(unit)

"""
Language package manager backends — npm (global), go install, pip.

These depend on a runtime installed earlier in the run (node via NVM,
Go via Homebrew), which may not be on this process's PATH yet.  The
npm backend therefore falls back to sourcing ``nvm.sh``.
"""

from __future__ import annotations

import json
import os
import shlex
from pathlib import Path

from converge.adapters.base import Backend, find_binary
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import (
    EXIT_NOT_FOUND,
    CommandResult,
    shell_command,
)
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit


def nvm_script() -> Path:
    return Path(os.environ.get("NVM_DIR", "~/.nvm")).expanduser() / "nvm.sh"


class NpmBackend(Backend):
    """Global npm packages (``npm install -g``)."""

    kind = SourceKind.LANGUAGE_PACKAGE
    managers = ("npm",)

    def _npm(self, *args: str) -> list[str]:
        if find_binary("npm", extra_dirs=()):
            return ["npm", *args]
        script = nvm_script()
        if script.is_file():
            return shell_command(f'. "{script}" && npm {shlex.join(args)}')
        return ["npm", *args]

    def is_available(self) -> bool:
        return find_binary("npm", extra_dirs=()) is not None or nvm_script().is_file()

    def query_presence(self, unit: Unit) -> Presence:
        result = self._run(self._npm("list", "-g", "--depth=0", unit.package_name))
        if result.ok:
            return Presence.CURRENT
        if result.exit_code == EXIT_NOT_FOUND:
            raise DetectionError("npm is not available")
        return Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run(self._npm("list", "-g", "--depth=0", "--json", unit.package_name))
        if not result.ok:
            return None
        try:
            data = json.loads(result.output)
        except json.JSONDecodeError:
            return None
        dep = data.get("dependencies", {}).get(unit.package_name, {})
        return dep.get("version")

    def install(self, unit: Unit) -> CommandResult:
        return self._run(self._npm("install", "-g", *unit.args, unit.package_name))

    def upgrade(self, unit: Unit) -> CommandResult:
        return self._run(self._npm("install", "-g", f"{unit.package_name}@latest"))


def go_binary_name(unit: Unit) -> str:
    """``github.com/chrishrb/go-grip@latest`` → ``go-grip``."""
    if unit.binary:
        return unit.binary
    module = unit.package_name.split("@", 1)[0]
    return module.rstrip("/").rsplit("/", 1)[-1]


def go_bin_dir() -> Path:
    gobin = os.environ.get("GOBIN")
    if gobin:
        return Path(gobin)
    gopath = os.environ.get("GOPATH", "~/go").split(os.pathsep)[0]
    return Path(gopath).expanduser() / "bin"


class GoBackend(Backend):
    """Go tools (``go install module@version``)."""

    kind = SourceKind.LANGUAGE_PACKAGE
    managers = ("go",)

    def is_available(self) -> bool:
        return find_binary("go") is not None

    def query_presence(self, unit: Unit) -> Presence:
        name = go_binary_name(unit)
        if (go_bin_dir() / name).is_file() or find_binary(name):
            return Presence.CURRENT
        return Presence.ABSENT

    def install(self, unit: Unit) -> CommandResult:
        go = find_binary("go") or "go"
        module = unit.package_name if "@" in unit.package_name else f"{unit.package_name}@latest"
        return self._run([go, "install", *unit.args, module], env_overrides=unit.env or None)


class PipBackend(Backend):
    """Python packages installed for the user (``pip install --user``)."""

    kind = SourceKind.LANGUAGE_PACKAGE
    managers = ("pip",)

    _PIP = ["python3", "-m", "pip"]

    def query_presence(self, unit: Unit) -> Presence:
        result = self._run(self._PIP + ["show", unit.package_name])
        if result.ok:
            return Presence.CURRENT
        if result.exit_code == EXIT_NOT_FOUND:
            raise DetectionError("python3 is not available")
        return Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        if unit.version_command or unit.binary:
            return super().query_version(unit)
        result = self._run(self._PIP + ["show", unit.package_name])
        for line in result.output.splitlines():
            if line.startswith("Version:"):
                return line.split(":", 1)[1].strip()
        return None

    def install(self, unit: Unit) -> CommandResult:
        return self._run(self._PIP + ["install", "--user", *unit.args, unit.package_name])

    def upgrade(self, unit: Unit) -> CommandResult:
        return self._run(self._PIP + ["install", "--user", "--upgrade", unit.package_name])


class NvmNodeBackend(Backend):
    """Node.js versions managed by NVM (``nvm install``).

    ``unit.package`` is the version spec, e.g. ``lts/*``; it also
    becomes the default alias.
    """

    kind = SourceKind.LANGUAGE_PACKAGE
    managers = ("nvm",)

    def _nvm(self, *args: str) -> list[str]:
        return shell_command(f'. "{nvm_script()}" && nvm {shlex.join(args)}')

    def is_available(self) -> bool:
        return nvm_script().is_file()

    def query_presence(self, unit: Unit) -> Presence:
        if not nvm_script().is_file():
            raise DetectionError(f"{nvm_script()} not found")
        version = self.query_version(unit)
        return Presence.CURRENT if version else Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        result = self._run(self._nvm("version", unit.package_name))
        version = result.output.strip().splitlines()[-1:] if result.ok else []
        if not version or version[0] in ("N/A", "none"):
            return None
        return version[0].lstrip("v")

    def install(self, unit: Unit) -> CommandResult:
        return self._run(shell_command(
            f'. "{nvm_script()}" && nvm install {shlex.quote(unit.package_name)}'
            f" && nvm alias default {shlex.quote(unit.package_name)}"
        ))

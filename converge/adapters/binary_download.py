"""
Direct download backend — prebuilt binaries, .deb files, installer scripts.

Three shapes, chosen by which unit fields are set:

    script             curl -fsSL <script> | bash        (NVM, Homebrew, ...)
    url ending .deb    download, then dpkg -i            (lsd)
    url + dest         download, then install -m 0755    (tealdeer, AppImages)

URLs may use ``{arch}`` (amd64/arm64) and ``{uname_arch}``
(x86_64/aarch64) placeholders, resolved from the running machine.
"""

from __future__ import annotations

import logging
import platform
import shlex
import shutil
import tempfile
from pathlib import Path

from converge.adapters.base import Backend, find_binary
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import CommandResult, shell_command
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit

logger = logging.getLogger(__name__)

_DEB_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def resolve_url(url: str, machine: str | None = None) -> str:
    """Fill ``{arch}`` / ``{uname_arch}`` placeholders for this machine."""
    machine = machine or platform.machine()
    return url.format(
        arch=_DEB_ARCH.get(machine.lower(), machine.lower()),
        uname_arch=machine,
    )


def script_command(unit: Unit) -> list[str]:
    """``curl <script> | bash`` for the unit, passing ``unit.args`` through."""
    url = resolve_url(unit.script)
    args = f" -s -- {shlex.join(unit.args)}" if unit.args else ""
    return shell_command(f"curl -fsSL {shlex.quote(url)} | bash{args}")


class BinaryDownloadBackend(Backend):
    """Download-and-place installs, outside any package manager."""

    kind = SourceKind.BINARY_DOWNLOAD

    def is_available(self) -> bool:
        return find_binary("curl", extra_dirs=()) is not None

    def query_presence(self, unit: Unit) -> Presence:
        if unit.dest:
            return Presence.CURRENT if Path(unit.dest).exists() else Presence.ABSENT
        if unit.binary:
            return Presence.CURRENT if find_binary(unit.binary) else Presence.ABSENT
        raise DetectionError(f"Unit '{unit.id}' declares neither dest nor binary to check")

    def install(self, unit: Unit) -> CommandResult:
        if unit.script:
            return self._install_script(unit)
        if not unit.url:
            return CommandResult(exit_code=2, output=f"Unit '{unit.id}' has no url or script")
        url = resolve_url(unit.url)
        if url.endswith(".deb"):
            return self._install_deb(unit, url)
        if not unit.dest:
            return CommandResult(exit_code=2, output=f"Unit '{unit.id}' has a url but no dest")
        return self._install_binary(unit, url)

    def _install_script(self, unit: Unit) -> CommandResult:
        logger.info("Running installer script for %s", unit.id)
        return self._run(
            script_command(unit),
            env_overrides=unit.env or None,
        )

    def _install_deb(self, unit: Unit, url: str) -> CommandResult:
        workdir = Path(tempfile.mkdtemp(prefix="converge-"))
        deb = workdir / url.rsplit("/", 1)[-1]
        try:
            return self._run_steps(
                (["curl", "-fsSL", "-o", str(deb), url], False),
                (["dpkg", "-i", str(deb)], True),
            )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _install_binary(self, unit: Unit, url: str) -> CommandResult:
        dest = Path(unit.dest)
        workdir = Path(tempfile.mkdtemp(prefix="converge-"))
        download = workdir / dest.name
        try:
            return self._run_steps(
                (["curl", "-fsSL", "-o", str(download), url], False),
                (["mkdir", "-p", str(dest.parent)], unit.needs_sudo),
                (["install", "-m", "0755", str(download), str(dest)], unit.needs_sudo),
            )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

"""
Mock backend — in-memory machine for tests and ``--mock`` runs.

Stands in for every source kind.  Tracks which unit ids are
"installed" (with an optional version), and can be told to fail an
install, to silently no-op, or to raise from detection.
"""

from __future__ import annotations

from collections.abc import Iterable

from converge.adapters.base import Backend
from converge.core.errors import DetectionError
from converge.core.execution.subprocess_runner import CommandResult
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit


class MockBackend(Backend):
    """Universal mock backend.

    By default every install succeeds and the unit becomes present.
    """

    kind = SourceKind.SYSTEM_PACKAGE
    managers = ("mock",)

    def __init__(
        self,
        installed: dict[str, str | None] | Iterable[str] | None = None,
        available: bool = True,
    ):
        super().__init__()
        if isinstance(installed, dict):
            self._installed: dict[str, str | None] = dict(installed)
        else:
            self._installed = {uid: None for uid in installed or ()}
        self._available = available
        self._failures: dict[str, CommandResult] = {}
        self._noop: set[str] = set()
        self._detect_errors: dict[str, str] = {}
        self._install_versions: dict[str, str] = {}
        self._call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """``(operation, unit_id)`` for every call received."""
        return self._call_log

    @property
    def installed(self) -> dict[str, str | None]:
        return dict(self._installed)

    def calls(self, operation: str) -> list[str]:
        """Unit ids passed to ``operation``, in call order."""
        return [uid for op, uid in self._call_log if op == operation]

    def is_available(self) -> bool:
        return self._available

    # ── Configuration ────────────────────────────────────────────

    def set_installed(self, unit_id: str, version: str | None = None) -> None:
        self._installed[unit_id] = version

    def remove(self, unit_id: str) -> None:
        self._installed.pop(unit_id, None)

    def set_failure(self, unit_id: str, output: str = "Mock failure", exit_code: int = 1) -> None:
        """Make installing ``unit_id`` exit non-zero."""
        self._failures[unit_id] = CommandResult(exit_code=exit_code, output=output)

    def set_noop(self, unit_id: str) -> None:
        """Make installing ``unit_id`` exit 0 without installing anything."""
        self._noop.add(unit_id)

    def set_detect_error(self, unit_id: str, message: str = "Mock detection error") -> None:
        self._detect_errors[unit_id] = message

    def set_install_version(self, unit_id: str, version: str) -> None:
        """Version a unit reports after it is installed or upgraded."""
        self._install_versions[unit_id] = version

    # ── Backend contract ─────────────────────────────────────────

    def query_presence(self, unit: Unit) -> Presence:
        self._call_log.append(("query_presence", unit.id))
        if unit.id in self._detect_errors:
            raise DetectionError(self._detect_errors[unit.id])
        return Presence.CURRENT if unit.id in self._installed else Presence.ABSENT

    def query_version(self, unit: Unit) -> str | None:
        self._call_log.append(("query_version", unit.id))
        return self._installed.get(unit.id)

    def install(self, unit: Unit) -> CommandResult:
        self._call_log.append(("install", unit.id))
        return self._apply(unit)

    def upgrade(self, unit: Unit) -> CommandResult:
        self._call_log.append(("upgrade", unit.id))
        return self._apply(unit)

    def _apply(self, unit: Unit) -> CommandResult:
        if unit.id in self._failures:
            return self._failures[unit.id]
        if unit.id in self._noop:
            return CommandResult(exit_code=0, output=f"[mock] {unit.id}: nothing to do")
        self._installed[unit.id] = self._install_versions.get(unit.id)
        return CommandResult(exit_code=0, output=f"[mock] {unit.id} installed")

    def reset(self) -> None:
        """Clear call log and configured behaviour (installed state is kept)."""
        self._call_log.clear()
        self._failures.clear()
        self._noop.clear()
        self._detect_errors.clear()

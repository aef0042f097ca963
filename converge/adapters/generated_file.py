"""
Generated-file backend — static files declared inline in the catalog.

Presence compares bytes: missing is absent, different is stale,
identical is current.  Writes go through the renderer's
backup-then-atomic-replace path, so an edited file is never lost.
"""

from __future__ import annotations

from pathlib import Path

from converge.adapters.base import Backend
from converge.core.errors import DetectionError, RenderError
from converge.core.execution.subprocess_runner import CommandResult
from converge.core.models.outcome import Presence
from converge.core.models.unit import SourceKind, Unit
from converge.core.rendering.renderer import write_if_changed


def expected_content(unit: Unit) -> str:
    """The file body with ``{home}`` filled in."""
    content = unit.content.replace("{home}", str(Path.home()))
    if content and not content.endswith("\n"):
        content += "\n"
    return content


class GeneratedFileBackend(Backend):
    """Write ``unit.content`` to ``unit.dest``."""

    kind = SourceKind.GENERATED_FILE

    def query_presence(self, unit: Unit) -> Presence:
        if not unit.dest:
            raise DetectionError(f"Unit '{unit.id}' has no dest")
        path = Path(unit.dest)
        if not path.exists():
            return Presence.ABSENT
        try:
            current = path.read_bytes()
        except OSError as e:
            raise DetectionError(f"Cannot read {path}: {e}") from e
        if current == expected_content(unit).encode("utf-8"):
            return Presence.CURRENT
        return Presence.STALE

    def query_version(self, unit: Unit) -> str | None:
        return None

    def install(self, unit: Unit) -> CommandResult:
        try:
            result = write_if_changed(Path(unit.dest), expected_content(unit), name=unit.id)
        except RenderError as e:
            return CommandResult(exit_code=1, output=str(e))
        message = f"{result.status}: {result.path}"
        if result.backup_path:
            message += f" (backup: {result.backup_path})"
        return CommandResult(exit_code=0, output=message)

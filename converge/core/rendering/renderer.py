"""
Config renderer — deterministic derived files, diffed before writing.

Lifecycle of one artifact:

    read existing bytes (if any)
    → generate new content from the capability set
    → identical?  nothing touches the filesystem      (unchanged)
    → differs?    copy old file to PATH.bak.<ts>,      (backed_up_and_written)
                  then atomic write-temp-then-rename
    → missing?    atomic write                         (written)

Render failures raise ``RenderError``; they never change install outcomes.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from converge.core.errors import ConfigurationError, RenderError
from converge.core.models.catalog import ArtifactSpec

logger = logging.getLogger(__name__)

RenderStatus = Literal["unchanged", "written", "backed_up_and_written", "failed"]

Generator = Callable[[frozenset[str]], str]

_DEFAULT_MODE = 0o644


@dataclass
class RenderResult:
    """What happened to one artifact."""

    name: str
    path: Path
    status: RenderStatus
    backup_path: Path | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def changed(self) -> bool:
        return self.status in ("written", "backed_up_and_written")

    def to_dict(self) -> dict:
        d: dict = {"name": self.name, "path": str(self.path), "status": self.status}
        if self.backup_path:
            d["backup_path"] = str(self.backup_path)
        if self.error:
            d["error"] = self.error
        return d


@dataclass(frozen=True)
class ConfigArtifact:
    """A target path plus the pure function that produces its content."""

    name: str
    path: Path
    generate: Generator
    backup: bool = True

    @classmethod
    def from_spec(
        cls,
        spec: ArtifactSpec,
        generators: dict[str, Generator] | None = None,
    ) -> ConfigArtifact:
        """Bind a catalog artifact spec to its registered generator.

        Raises:
            ConfigurationError: If the generator name is not registered.
        """
        if generators is None:
            from converge.core.rendering.zshrc import GENERATORS

            generators = GENERATORS
        generate = generators.get(spec.generator)
        if generate is None:
            raise ConfigurationError(
                f"Artifact '{spec.name}' uses unknown generator '{spec.generator}'"
            )
        return cls(
            name=spec.name,
            path=Path(spec.path).expanduser(),
            generate=generate,
            backup=spec.backup,
        )


# ── Filesystem helpers ──────────────────────────────────────────


def backup_path_for(path: Path, timestamp: str | None = None) -> Path:
    """Sibling backup path ``PATH.bak.YYYYMMDD_HHMMSS`` that does not exist yet."""
    ts = timestamp or time.strftime("%Y%m%d_%H%M%S")
    candidate = path.with_name(f"{path.name}.bak.{ts}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{ts}-{n}")
        n += 1
    return candidate


def atomic_write(path: Path, content: bytes) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory.

    The existing file's permission bits are kept; new files get 0644.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else _DEFAULT_MODE

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def write_if_changed(path: Path, content: str, *, backup: bool = True, name: str = "") -> RenderResult:
    """Write ``content`` only if it differs from what is on disk.

    Raises:
        RenderError: If the path cannot be read, backed up, or written.
    """
    name = name or path.name
    new_bytes = content.encode("utf-8")

    try:
        old_bytes = path.read_bytes() if path.exists() else None
    except OSError as e:
        raise RenderError(f"Cannot read {path}: {e}", path=path) from e

    if old_bytes == new_bytes:
        logger.debug("Artifact %s unchanged: %s", name, path)
        return RenderResult(name=name, path=path, status="unchanged")

    backup_path: Path | None = None
    if old_bytes is not None and backup:
        backup_path = backup_path_for(path)
        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise RenderError(f"Cannot back up {path}: {e}", path=path) from e
        logger.info("Backed up %s → %s", path, backup_path)

    try:
        atomic_write(path, new_bytes)
    except OSError as e:
        raise RenderError(f"Cannot write {path}: {e}", path=path) from e

    logger.info("Wrote %s (%d bytes)", path, len(new_bytes))
    return RenderResult(
        name=name,
        path=path,
        status="backed_up_and_written" if backup_path else "written",
        backup_path=backup_path,
    )


# ── Rendering ───────────────────────────────────────────────────


def render(artifact: ConfigArtifact, capabilities: Iterable[str]) -> RenderResult:
    """Regenerate one artifact from the present capability set.

    Raises:
        RenderError: If generation or the write fails.
    """
    caps = frozenset(capabilities)
    try:
        content = artifact.generate(caps)
    except Exception as e:
        raise RenderError(
            f"Generator for '{artifact.name}' failed: {e}", path=artifact.path,
        ) from e
    return write_if_changed(artifact.path, content, backup=artifact.backup, name=artifact.name)


def render_artifacts(
    artifacts: Iterable[ConfigArtifact],
    capabilities: Iterable[str],
) -> list[RenderResult]:
    """Render every artifact; a failure is recorded, not raised."""
    caps = frozenset(capabilities)
    results: list[RenderResult] = []
    for artifact in artifacts:
        try:
            results.append(render(artifact, caps))
        except RenderError as e:
            logger.error("Render failed for %s: %s", artifact.name, e)
            results.append(RenderResult(
                name=artifact.name, path=artifact.path, status="failed", error=str(e),
            ))
    return results

"""
Unit model — one declared piece of desired machine state.

A unit names *what* should exist (a package, an app, a binary, a clone,
a generated file) and *which backend* knows how to detect and install it.
Units are frozen: once the catalog is built nothing can mutate them.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(StrEnum):
    """Which family of installer a unit comes from."""

    SYSTEM_PACKAGE = "system-package"
    CASK = "cask"
    LANGUAGE_PACKAGE = "language-package"
    BINARY_DOWNLOAD = "binary-download"
    GIT_CLONE = "git-clone"
    GENERATED_FILE = "generated-file"


class Unit(BaseModel):
    """A single desired piece of environment state.

    Only ``id`` and ``kind`` are required. The remaining fields are read
    by the backend that handles ``kind``; irrelevant ones stay empty.
    """

    model_config = ConfigDict(frozen=True)

    # ── Identity ─────────────────────────────────────────────────
    id: str
    kind: SourceKind
    label: str = ""
    rationale: str = ""
    depends_on: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()      # empty = every platform

    # ── Backend selection ────────────────────────────────────────
    manager: str = ""                    # apt, brew, snap, npm, go, pip
    package: str = ""                    # name passed to the manager (default: id)
    binary: str = ""                     # command looked up on PATH
    needs_sudo: bool = False
    upgrade: bool = True                 # may be upgraded when stale

    # ── Version check ────────────────────────────────────────────
    min_version: str = ""
    version_command: tuple[str, ...] = ()
    version_pattern: str = ""

    # ── Source locations ─────────────────────────────────────────
    url: str = ""                        # binary download URL
    script: str = ""                     # installer script URL (curl | bash)
    repo: str = ""                       # git clone URL
    dest: str = ""                       # target path on disk
    content: str = ""                    # generated-file body
    args: tuple[str, ...] = ()           # extra installer arguments
    env: dict[str, str] = Field(default_factory=dict)  # extra env for installers

    @property
    def display_name(self) -> str:
        """Human label, falling back to the id."""
        return self.label or self.id

    @property
    def package_name(self) -> str:
        """Name handed to the package manager."""
        return self.package or self.id

    def applies_to(self, platform: str) -> bool:
        """Whether this unit is declared for the given platform."""
        return not self.platforms or platform in self.platforms

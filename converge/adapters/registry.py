"""
Backend registry — maps each unit to the backend that handles it.

Lookup is by ``(kind, manager)``.  A unit without a ``manager`` gets the
first backend registered for its kind.  In mock mode every unit is
routed to a single ``MockBackend``.
"""

from __future__ import annotations

import logging
from typing import Any

from converge.adapters.account import GhCredentialBackend, LoginShellBackend
from converge.adapters.base import Backend
from converge.adapters.binary_download import BinaryDownloadBackend
from converge.adapters.cask import BrewCaskBackend, SnapBackend
from converge.adapters.generated_file import GeneratedFileBackend
from converge.adapters.git_clone import GitCloneBackend
from converge.adapters.language_package import GoBackend, NpmBackend, NvmNodeBackend, PipBackend
from converge.adapters.mock import MockBackend
from converge.adapters.system_package import AptBackend, BrewFormulaBackend, MacSystemBackend
from converge.core.execution.subprocess_runner import CommandRunner
from converge.core.models.unit import SourceKind, Unit

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Registry and resolver for installer backends."""

    def __init__(self, mock_mode: bool = False, mock_backend: MockBackend | None = None):
        self._backends: dict[tuple[SourceKind, str], Backend] = {}
        self._mock_mode = mock_mode
        self._mock_backend = mock_backend

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    @property
    def mock_backend(self) -> MockBackend | None:
        return self._mock_backend

    def set_mock_mode(self, enabled: bool, mock_backend: MockBackend | None = None) -> None:
        """Route every unit to ``mock_backend`` (a fresh one if None)."""
        self._mock_mode = enabled
        if enabled:
            self._mock_backend = mock_backend or self._mock_backend or MockBackend()

    def register(self, backend: Backend) -> None:
        for manager in backend.managers:
            key = (backend.kind, manager)
            if key in self._backends:
                logger.warning("Overwriting existing backend: %s:%s", *key)
            self._backends[key] = backend
        logger.debug("Registered backend: %s", backend.name)

    def get(self, kind: SourceKind, manager: str = "") -> Backend | None:
        if manager:
            return self._backends.get((kind, manager))
        for (k, _), backend in self._backends.items():
            if k == kind:
                return backend
        return None

    def resolve(self, unit: Unit) -> Backend | None:
        """Backend responsible for ``unit``, or None if nothing handles it."""
        if self._mock_mode:
            if self._mock_backend is None:
                self._mock_backend = MockBackend()
            return self._mock_backend
        return self.get(unit.kind, unit.manager)

    def unresolved(self, units: list[Unit] | tuple[Unit, ...]) -> list[str]:
        """Ids of units no registered backend can handle."""
        return [u.id for u in units if self.resolve(u) is None]

    def backend_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered backend on this machine."""
        status: dict[str, dict[str, Any]] = {}
        for (kind, manager), backend in self._backends.items():
            name = f"{kind}:{manager or 'default'}"
            try:
                available = backend.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": backend.__class__.__name__,
            }
        return status


def default_registry(
    runner: CommandRunner | None = None,
    mock_mode: bool = False,
) -> BackendRegistry:
    """Registry with every built-in backend, sharing one command runner."""
    registry = BackendRegistry(mock_mode=mock_mode)
    for backend_cls in (
        AptBackend,
        BrewFormulaBackend,
        MacSystemBackend,
        LoginShellBackend,
        GhCredentialBackend,
        BrewCaskBackend,
        SnapBackend,
        NpmBackend,
        NvmNodeBackend,
        GoBackend,
        PipBackend,
        BinaryDownloadBackend,
        GitCloneBackend,
        GeneratedFileBackend,
    ):
        registry.register(backend_cls(runner))
    if mock_mode:
        registry.set_mock_mode(True)
    return registry

"""
Detector — tri-state presence of a unit on the live machine.

    ABSENT   not installed (or detection could not tell)
    STALE    installed, but below the unit's ``min_version``
    CURRENT  installed at the desired version

Detection is read-only.  A query that errors never propagates: the
unit is reported ABSENT with a warning so that install is attempted
and the installer's own failure handling takes over.
"""

from __future__ import annotations

import logging

from converge.adapters.base import Backend, find_binary
from converge.adapters.registry import BackendRegistry
from converge.core.detection.version import is_at_least
from converge.core.models.outcome import Detection, Presence
from converge.core.models.unit import Unit

logger = logging.getLogger(__name__)


class Detector:
    """Runs each unit's presence and version queries through its backend."""

    def __init__(self, registry: BackendRegistry):
        self._registry = registry

    def detect(self, unit: Unit) -> Detection:
        backend = self._registry.resolve(unit)
        if backend is None:
            warning = f"No backend for {unit.kind}:{unit.manager or 'default'}"
            logger.warning("%s (unit %s)", warning, unit.id)
            return Detection(presence=Presence.ABSENT, warning=warning)

        try:
            presence = backend.query_presence(unit)
        except Exception as e:
            return self._detection_failed(unit, e)

        if presence == Presence.ABSENT:
            return Detection(presence=Presence.ABSENT)
        return self._check_version(unit, backend, presence)

    def _detection_failed(self, unit: Unit, error: Exception) -> Detection:
        warning = f"Presence check failed, assuming absent: {error}"
        # PATH is only a hint: it cannot tell which install owns the binary.
        if unit.binary and find_binary(unit.binary):
            warning += f" ('{unit.binary}' is on PATH)"
        logger.warning("%s: %s", unit.id, warning)
        return Detection(presence=Presence.ABSENT, warning=warning)

    def _check_version(self, unit: Unit, backend: Backend, presence: Presence) -> Detection:
        if not unit.min_version:
            return Detection(presence=presence)

        try:
            version = backend.query_version(unit)
        except Exception as e:
            warning = f"Version check failed: {e}"
            logger.warning("%s: %s", unit.id, warning)
            return Detection(presence=presence, warning=warning)

        if version is None:
            logger.debug("%s: version unknown, treating as current", unit.id)
            return Detection(presence=presence)

        try:
            current = is_at_least(version, unit.min_version)
        except ValueError as e:
            warning = f"Cannot compare version {version!r}: {e}"
            logger.warning("%s: %s", unit.id, warning)
            return Detection(presence=presence, version=version, warning=warning)

        if not current:
            logger.info(
                "%s: version %s is below minimum %s", unit.id, version, unit.min_version,
            )
            return Detection(presence=Presence.STALE, version=version)
        return Detection(presence=presence, version=version)

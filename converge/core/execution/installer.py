"""
Installer — runs a unit's install (or upgrade) action and classifies it.

Every action is followed by a second detection pass.  An installer that
exits 0 but leaves the unit absent is recorded as failed: some tools
silently no-op (a missing cask, an already-running installer).
Captured output is only kept on failure.
"""

from __future__ import annotations

import logging
import time

from converge.adapters.registry import BackendRegistry
from converge.core.detection.detector import Detector
from converge.core.models.outcome import Detection, InstallOutcome, Presence
from converge.core.models.unit import Unit

logger = logging.getLogger(__name__)


class Installer:
    """Executes install actions through the backend registry."""

    def __init__(self, registry: BackendRegistry, detector: Detector | None = None):
        self._registry = registry
        self._detector = detector or Detector(registry)

    def install(self, unit: Unit, detection: Detection | None = None) -> InstallOutcome:
        """Install or upgrade ``unit``; never raises.

        Args:
            unit: The unit to converge.
            detection: The pre-install detection (upgrade when STALE).
        """
        start = time.monotonic()
        upgrading = detection is not None and detection.presence == Presence.STALE
        verb = "upgrade" if upgrading else "install"
        warnings = [detection.warning] if detection is not None and detection.warning else []

        backend = self._registry.resolve(unit)
        if backend is None:
            return InstallOutcome.failure(
                f"no backend for {unit.kind}:{unit.manager or 'default'}",
                warnings=warnings,
            )

        logger.info("%s %s via %s", verb.capitalize(), unit.id, backend.name)
        try:
            result = backend.upgrade(unit) if upgrading else backend.install(unit)
        except Exception as e:
            logger.exception("Backend raised during %s of %s", verb, unit.id)
            return InstallOutcome.failure(
                f"{verb} raised {type(e).__name__}: {e}",
                warnings=warnings,
                duration_ms=_elapsed_ms(start),
            )

        if result.skipped:
            logger.info("%s: %s skipped: %s", unit.id, verb, result.output.strip())
            return InstallOutcome.skip(
                result.output.strip() or f"{verb} not applicable",
                warnings=warnings,
                duration_ms=_elapsed_ms(start),
            )

        if not result.ok:
            return InstallOutcome.failure(
                f"{verb} failed (exit {result.exit_code})",
                output=result.output,
                warnings=warnings,
                duration_ms=_elapsed_ms(start),
                metadata={"command": result.command_line} if result.command else {},
            )

        after = self._detector.detect(unit)
        if after.presence == Presence.ABSENT:
            return InstallOutcome.failure(
                "post-install verification failed",
                output=result.output,
                warnings=warnings + ([after.warning] if after.warning else []),
                duration_ms=_elapsed_ms(start),
            )
        if after.presence == Presence.STALE:
            warnings.append(
                f"still below minimum {unit.min_version} after {verb} (found {after.version})"
            )

        factory = InstallOutcome.upgraded if upgrading else InstallOutcome.installed
        return factory(
            version=after.version,
            warnings=warnings,
            duration_ms=_elapsed_ms(start),
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

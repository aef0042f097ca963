"""
Run engine — the convergence loop.

For each stage in plan order, for each unit in stage order:

    dependency not in place → Skipped, install never attempted
    detect → CURRENT        → AlreadyPresent
           → ABSENT/STALE   → install/upgrade via the Installer

A failed unit only affects units that depend on it, directly or
through a skipped unit.  Nothing aborts the run except cancellation,
and even then every unit still gets exactly one outcome.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from converge.adapters.registry import BackendRegistry
from converge.core.detection.detector import Detector
from converge.core.engine.planner import Plan, plan
from converge.core.errors import ConfigurationError
from converge.core.execution.installer import Installer
from converge.core.models.catalog import Catalog
from converge.core.models.outcome import Detection, InstallOutcome, Presence
from converge.core.models.report import RunReport
from converge.core.models.unit import Unit

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[Unit, InstallOutcome], None]

CANCELLED_REASON = "run cancelled"


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def prepare(catalog: Catalog, registry: BackendRegistry) -> Plan:
    """Plan the catalog and check every unit has a backend.

    Raises:
        ConfigurationError: On a dependency cycle or an unhandled unit.
    """
    execution_plan = plan(catalog)
    missing = registry.unresolved(catalog.units)
    if missing:
        raise ConfigurationError(
            f"No backend can handle unit(s): {', '.join(missing)}", units=missing,
        )
    return execution_plan


def _blocked_by(unit: Unit, report: RunReport) -> InstallOutcome | None:
    """Skip outcome for ``unit`` if any of its dependencies is not in place."""
    failed: list[str] = []
    skipped: list[str] = []
    for dep in unit.depends_on:
        outcome = report.outcome_for(dep)
        if outcome is None or outcome.ok:
            continue
        if outcome.metadata.get("dry_run"):
            # Would have been installed; dependents are still worth probing.
            continue
        (failed if outcome.failed else skipped).append(dep)
    if failed:
        return InstallOutcome.skip(f"dependency unit failed: {', '.join(failed)}")
    if skipped:
        return InstallOutcome.skip(f"dependency unit skipped: {', '.join(skipped)}")
    return None


def _converge_unit(
    unit: Unit,
    report: RunReport,
    detector: Detector,
    installer: Installer,
    dry_run: bool,
) -> InstallOutcome:
    blocked = _blocked_by(unit, report)
    if blocked is not None:
        return blocked

    detection: Detection = detector.detect(unit)
    warnings = [detection.warning] if detection.warning else []

    if detection.presence == Presence.CURRENT:
        return InstallOutcome.already_present(version=detection.version, warnings=warnings)

    if detection.presence == Presence.STALE and not unit.upgrade:
        warnings.append(
            f"version {detection.version} is below minimum {unit.min_version}; upgrade disabled"
        )
        return InstallOutcome.already_present(version=detection.version, warnings=warnings)

    if dry_run:
        verb = "upgrade" if detection.presence == Presence.STALE else "install"
        return InstallOutcome.skip(
            f"dry run: would {verb}",
            version=detection.version,
            warnings=warnings,
            metadata={"dry_run": True},
        )

    return installer.install(unit, detection)


def _log_outcome(unit: Unit, outcome: InstallOutcome) -> None:
    marker = "✓" if outcome.ok else "✗" if outcome.failed else "⊘"
    if outcome.failed:
        logger.error("%s %s → failed: %s", marker, unit.id, outcome.reason)
    else:
        logger.info(
            "%s %s → %s%s", marker, unit.id, outcome.status,
            f" ({outcome.reason})" if outcome.reason else "",
        )


def run(
    catalog: Catalog,
    registry: BackendRegistry,
    *,
    dry_run: bool = False,
    cancel: threading.Event | None = None,
    on_outcome: OutcomeCallback | None = None,
    run_id: str = "",
) -> RunReport:
    """Converge the machine towards ``catalog``.

    Args:
        catalog: Validated catalog for this platform.
        registry: Backend registry used for detection and install.
        dry_run: Detect only; units needing work are skipped.
        cancel: When set, the run stops after the in-flight unit.
        on_outcome: Called once per unit as its outcome is recorded.
        run_id: Identifier for this run (generated if empty).

    Returns:
        RunReport listing every catalog unit exactly once.

    Raises:
        ConfigurationError: At plan time, before any unit is touched.
    """
    execution_plan = prepare(catalog, registry)
    detector = Detector(registry)
    installer = Installer(registry, detector)
    report = RunReport(
        run_id=run_id or generate_run_id(),
        platform=catalog.platform,
        dry_run=dry_run,
    )

    def record(unit: Unit, outcome: InstallOutcome, stage: int) -> None:
        report.record(unit, outcome, stage)
        _log_outcome(unit, outcome)
        if on_outcome is not None:
            on_outcome(unit, outcome)

    logger.info(
        "Run %s: %d units in %d stages%s",
        report.run_id, execution_plan.total_units, len(execution_plan.stages),
        " (dry run)" if dry_run else "",
    )

    for stage in execution_plan.stages:
        for unit in stage.units:
            if report.cancelled or (cancel is not None and cancel.is_set()):
                report.cancelled = True
                record(unit, InstallOutcome.skip(CANCELLED_REASON), stage.index)
                continue
            try:
                outcome = _converge_unit(unit, report, detector, installer, dry_run)
            except KeyboardInterrupt:
                logger.warning("Interrupted while converging %s", unit.id)
                report.cancelled = True
                outcome = InstallOutcome.failure("interrupted")
            record(unit, outcome, stage.index)

    if report.cancelled:
        logger.warning("Run %s cancelled", report.run_id)
    return report


def detect_all(catalog: Catalog, registry: BackendRegistry) -> list[tuple[Unit, Detection]]:
    """Detection only, in plan order; nothing is installed."""
    execution_plan = prepare(catalog, registry)
    detector = Detector(registry)
    return [(unit, detector.detect(unit)) for unit in execution_plan.units]

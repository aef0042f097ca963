"""
Converge use cases — load, lock, run, render, audit.

These are the top-level orchestrators behind ``converge run``,
``status`` and ``render``.  They never raise for expected problems:
configuration and lock errors come back on the result with the exit
code the CLI should use.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from converge.adapters.registry import BackendRegistry, default_registry
from converge.core.config.loader import default_state_dir, load_catalog
from converge.core.engine.executor import OutcomeCallback, detect_all, run
from converge.core.engine.lock import LOCK_FILE, RunLock
from converge.core.engine.planner import Plan, plan
from converge.core.errors import ConfigurationError, LockError
from converge.core.models.catalog import Catalog
from converge.core.models.outcome import Detection, Presence
from converge.core.models.report import RunReport
from converge.core.models.unit import Unit
from converge.core.persistence.audit import AuditEntry, AuditWriter
from converge.core.rendering.renderer import ConfigArtifact, RenderResult, render_artifacts

logger = logging.getLogger(__name__)

# ── Exit codes ──────────────────────────────────────────────────

EXIT_OK = 0
EXIT_FAILED_UNITS = 1
EXIT_CONFIG_ERROR = 2
EXIT_RENDER_ERROR = 3
EXIT_LOCKED = 4
EXIT_CANCELLED = 130


@dataclass
class ConvergeResult:
    """Result of one ``converge run``/``render``/``status`` invocation."""

    report: RunReport | None = None
    renders: list[RenderResult] = field(default_factory=list)
    detections: list[tuple[Unit, Detection]] = field(default_factory=list)
    plan: Plan | None = None
    catalog_path: Path | None = None
    render_skipped: str = ""
    error: str | None = None
    locked: bool = False

    @property
    def render_failed(self) -> bool:
        return any(not r.ok for r in self.renders)

    @property
    def exit_code(self) -> int:
        if self.locked:
            return EXIT_LOCKED
        if self.error:
            return EXIT_CONFIG_ERROR
        if self.report is not None:
            if self.report.cancelled:
                return EXIT_CANCELLED
            if not self.report.all_ok:
                return EXIT_FAILED_UNITS
        if self.render_failed:
            return EXIT_RENDER_ERROR
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            return result
        if self.catalog_path is not None:
            result["catalog"] = str(self.catalog_path)
        if self.report is not None:
            result["report"] = self.report.to_dict()
        if self.detections:
            result["units"] = [
                {"unit": u.id, **d.model_dump(mode="json", exclude_none=True)}
                for u, d in self.detections
            ]
        if self.renders:
            result["renders"] = [r.to_dict() for r in self.renders]
        if self.render_skipped:
            result["render_skipped"] = self.render_skipped
        return result


@dataclass
class Session:
    """Everything loaded before any unit is touched."""

    catalog: Catalog
    catalog_path: Path | None
    plan: Plan
    artifacts: list[ConfigArtifact]
    registry: BackendRegistry


def open_session(
    catalog_path: Path | None = None,
    platform: str | None = None,
    only: list[str] | None = None,
    mock_mode: bool = False,
    registry: BackendRegistry | None = None,
    catalog: Catalog | None = None,
) -> Session:
    """Load, narrow, plan and bind artifacts; all plan-time checks happen here.

    Raises:
        ConfigurationError: Nothing has been installed when this is raised.
    """
    if catalog is None:
        catalog = load_catalog(catalog_path, platform)
    if only:
        catalog = catalog.select(only)

    execution_plan = plan(catalog)
    artifacts = [ConfigArtifact.from_spec(spec) for spec in catalog.artifacts]

    if registry is None:
        registry = default_registry(mock_mode=mock_mode)
    missing = registry.unresolved(catalog.units)
    if missing:
        raise ConfigurationError(
            f"No backend can handle unit(s): {', '.join(missing)}", units=missing,
        )
    return Session(
        catalog=catalog,
        catalog_path=catalog_path,
        plan=execution_plan,
        artifacts=artifacts,
        registry=registry,
    )


def _render_skip_reason(report: RunReport, only: list[str] | None, mock_mode: bool) -> str:
    """Why rendering would be wrong for this run, or "" if it is fine."""
    if report.cancelled:
        return "run cancelled"
    if report.dry_run:
        return "dry run"
    if only:
        return "--only narrows the capability set"
    if mock_mode:
        return "mock mode"
    return ""


def converge_machine(
    catalog_path: Path | None = None,
    platform: str | None = None,
    only: list[str] | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    render: bool = True,
    registry: BackendRegistry | None = None,
    cancel: threading.Event | None = None,
    on_outcome: OutcomeCallback | None = None,
    state_dir: Path | None = None,
    catalog: Catalog | None = None,
) -> ConvergeResult:
    """Converge the machine to its catalog, then regenerate derived config.

    Args:
        catalog_path: Explicit catalog file (see loader for resolution).
        platform: Built-in catalog name when no path is given.
        only: Restrict the run to these unit ids (plus dependencies).
        dry_run: Detect only.
        mock_mode: Route every unit to the in-memory mock backend.
        render: Regenerate configuration artifacts after the run.
        registry: Pre-configured backend registry.
        cancel: Event that stops the run after the in-flight unit.
        on_outcome: Streaming callback, one call per unit.
        state_dir: Lock and audit directory (default: $CONVERGE_STATE_DIR).
        catalog: Already-built catalog (skips loading).

    Returns:
        ConvergeResult; ``exit_code`` follows the CLI convention.
    """
    result = ConvergeResult(catalog_path=catalog_path)
    state_dir = state_dir or default_state_dir()

    try:
        session = open_session(catalog_path, platform, only, mock_mode, registry, catalog)
    except ConfigurationError as e:
        result.error = str(e)
        return result
    result.plan = session.plan

    start = time.monotonic()
    try:
        with RunLock(state_dir / LOCK_FILE):
            report = run(
                session.catalog,
                session.registry,
                dry_run=dry_run,
                cancel=cancel,
                on_outcome=on_outcome,
            )
            result.report = report

            skip_reason = _render_skip_reason(report, only, mock_mode)
            if render and not skip_reason:
                result.renders = render_artifacts(session.artifacts, report.capabilities)
            elif render and session.artifacts:
                result.render_skipped = skip_reason
                logger.info("Not rendering artifacts: %s", skip_reason)
    except LockError as e:
        result.error = str(e)
        result.locked = True
        return result
    except ConfigurationError as e:
        result.error = str(e)
        return result

    AuditWriter(state_dir).write(AuditEntry.from_report(
        report,
        catalog=str(catalog_path or ""),
        render_failures=[r.name for r in result.renders if not r.ok],
        duration_ms=int((time.monotonic() - start) * 1000),
    ))
    return result


def survey_machine(
    catalog_path: Path | None = None,
    platform: str | None = None,
    only: list[str] | None = None,
    mock_mode: bool = False,
    registry: BackendRegistry | None = None,
    catalog: Catalog | None = None,
) -> ConvergeResult:
    """Detection only: tri-state per unit, nothing installed or written."""
    result = ConvergeResult(catalog_path=catalog_path)
    try:
        session = open_session(catalog_path, platform, only, mock_mode, registry, catalog)
        result.plan = session.plan
        result.detections = detect_all(session.catalog, session.registry)
    except ConfigurationError as e:
        result.error = str(e)
    return result


def render_machine(
    catalog_path: Path | None = None,
    platform: str | None = None,
    registry: BackendRegistry | None = None,
    state_dir: Path | None = None,
    catalog: Catalog | None = None,
) -> ConvergeResult:
    """Regenerate artifacts from what is currently on the machine.

    Stale units still count as present capabilities.
    """
    result = ConvergeResult(catalog_path=catalog_path)
    try:
        session = open_session(catalog_path, platform, registry=registry, catalog=catalog)
        result.plan = session.plan
        result.detections = detect_all(session.catalog, session.registry)
    except ConfigurationError as e:
        result.error = str(e)
        return result

    capabilities = frozenset(
        u.id for u, d in result.detections if d.presence != Presence.ABSENT
    )
    state_dir = state_dir or default_state_dir()
    try:
        with RunLock(state_dir / LOCK_FILE):
            result.renders = render_artifacts(session.artifacts, capabilities)
    except LockError as e:
        result.error = str(e)
        result.locked = True
    return result

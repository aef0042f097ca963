"""
Reporter — plain-text summaries of runs and renders.

Pure formatting: every function returns a string and touches nothing.
Each unit appears exactly once, in run order, followed by the tally.
"""

from __future__ import annotations

from collections.abc import Iterable

from converge.core.models.outcome import Detection, InstallOutcome
from converge.core.models.report import OUTCOME_ORDER, RunReport
from converge.core.models.unit import Unit
from converge.core.rendering.renderer import RenderResult

# Lines of captured output shown per failure unless verbose.
FAILURE_TAIL_LINES = 15

_MARKERS = {
    "installed": "✓",
    "already_present": "✓",
    "upgraded": "✓",
    "failed": "✗",
    "skipped": "⊘",
}

_LABELS = {
    "installed": "installed",
    "already_present": "already present",
    "upgraded": "upgraded",
    "failed": "failed",
    "skipped": "skipped",
}


def format_outcome(unit: Unit, outcome: InstallOutcome, width: int = 24) -> str:
    """One summary line: marker, unit id, status, reason/version."""
    detail = outcome.reason or outcome.version or ""
    status = _LABELS[outcome.status]
    if detail:
        status = f"{status}: {detail}" if outcome.reason else f"{status} ({detail})"
    return f"  {_MARKERS[outcome.status]} {unit.id:<{width}} {status}"


def _output_block(output: str, verbose: bool) -> list[str]:
    lines = output.rstrip().splitlines()
    if not verbose and len(lines) > FAILURE_TAIL_LINES:
        hidden = len(lines) - FAILURE_TAIL_LINES
        lines = [f"... {hidden} earlier line(s) omitted"] + lines[-FAILURE_TAIL_LINES:]
    return [f"      │ {line}" for line in lines]


def tally(report: RunReport) -> str:
    counts = report.counts
    parts = [f"{_LABELS[s].capitalize()}: {counts[s]}" for s in OUTCOME_ORDER]
    return f"{' · '.join(parts)}   ({report.total} units)"


def summarize(report: RunReport, verbose: bool = False) -> str:
    """Human-readable summary with per-unit status and the aggregate tally.

    Failures carry their captured installer output; warnings are only
    listed when ``verbose``.
    """
    width = max((len(e.unit.id) for e in report.entries), default=0)
    header = f"converge {report.run_id or 'run'}"
    if report.platform:
        header += f" ({report.platform})"
    if report.dry_run:
        header += " [dry run]"

    lines = [header, ""]
    for entry in report.entries:
        lines.append(format_outcome(entry.unit, entry.outcome, width))
        if entry.outcome.failed and entry.outcome.output.strip():
            lines.extend(_output_block(entry.outcome.output, verbose))
        if verbose:
            lines.extend(f"      ⚠ {w}" for w in entry.outcome.warnings)

    lines.append("")
    lines.append(tally(report))
    if report.cancelled:
        lines.append("Run cancelled: remaining units were not attempted.")
    if report.failed_units:
        lines.append(f"Failed: {', '.join(report.failed_units)}")
    return "\n".join(lines)


def summarize_renders(results: Iterable[RenderResult]) -> str:
    """One line per rendered artifact."""
    lines = []
    for r in results:
        if r.status == "failed":
            lines.append(f"  ✗ {r.name}: {r.error}")
        elif r.status == "unchanged":
            lines.append(f"  ✓ {r.name}: unchanged ({r.path})")
        elif r.status == "backed_up_and_written":
            lines.append(f"  ✓ {r.name}: written ({r.path}), backup at {r.backup_path}")
        else:
            lines.append(f"  ✓ {r.name}: written ({r.path})")
    return "\n".join(lines)


def summarize_status(detections: Iterable[tuple[Unit, Detection]]) -> str:
    """Tri-state table for ``converge status``."""
    rows = list(detections)
    width = max((len(u.id) for u, _ in rows), default=0)
    markers = {"current": "✓", "stale": "↑", "absent": "·"}
    lines = []
    for unit, d in rows:
        line = f"  {markers[d.presence]} {unit.id:<{width}} {d.presence}"
        if d.version:
            line += f" ({d.version})"
        if d.warning:
            line += f"  ⚠ {d.warning}"
        lines.append(line)
    return "\n".join(lines)

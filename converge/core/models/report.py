"""
RunReport — the ordered record of one convergence run.

Owned by the run engine while the run is in progress, then handed to
the reporter and the config renderer.  It is never persisted as state:
every run rediscovers the machine from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from converge.core.models.outcome import InstallOutcome
from converge.core.models.unit import Unit

OUTCOME_ORDER = ("installed", "already_present", "upgraded", "failed", "skipped")


@dataclass
class ReportEntry:
    """One unit and its terminal outcome."""

    unit: Unit
    outcome: InstallOutcome
    stage: int = 0

    def to_dict(self) -> dict:
        return {
            "unit": self.unit.id,
            "label": self.unit.display_name,
            "kind": str(self.unit.kind),
            "stage": self.stage,
            **self.outcome.model_dump(mode="json", exclude_defaults=True),
        }


@dataclass
class RunReport:
    """Ordered (unit, outcome) pairs plus aggregate counts."""

    run_id: str = ""
    platform: str = ""
    entries: list[ReportEntry] = field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False

    def record(self, unit: Unit, outcome: InstallOutcome, stage: int = 0) -> None:
        """Append the terminal outcome for ``unit``.

        Raises:
            ValueError: If the unit already has an outcome in this run.
        """
        if self.outcome_for(unit.id) is not None:
            raise ValueError(f"Unit '{unit.id}' already has an outcome in this run")
        self.entries.append(ReportEntry(unit=unit, outcome=outcome, stage=stage))

    def outcome_for(self, unit_id: str) -> InstallOutcome | None:
        for entry in self.entries:
            if entry.unit.id == unit_id:
                return entry.outcome
        return None

    # ── Aggregates ───────────────────────────────────────────────

    def count(self, status: str) -> int:
        return sum(1 for e in self.entries if e.outcome.status == status)

    @property
    def counts(self) -> dict[str, int]:
        return {status: self.count(status) for status in OUTCOME_ORDER}

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def failed_units(self) -> list[str]:
        return [e.unit.id for e in self.entries if e.outcome.failed]

    @property
    def capabilities(self) -> frozenset[str]:
        """Ids of units that are in place after this run."""
        return frozenset(e.unit.id for e in self.entries if e.outcome.ok)

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.failed == 0:
            return "ok"
        if any(e.outcome.ok for e in self.entries):
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "platform": self.platform,
            "status": self.status,
            "cancelled": self.cancelled,
            "dry_run": self.dry_run,
            "total": self.total,
            "counts": self.counts,
            "entries": [e.to_dict() for e in self.entries],
        }

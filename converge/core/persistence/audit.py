"""
Audit ledger — append-only history of convergence runs.

Every completed run appends one NDJSON line to ``audit.ndjson`` in the
state directory.  The ledger is history only: the engine never reads it
to decide what to install, because the machine itself is the source of
truth.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from converge.core.models.report import RunReport

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    platform: str = ""
    catalog: str = ""

    # Results
    status: str = ""               # ok, partial, failed, cancelled
    dry_run: bool = False
    cancelled: bool = False
    counts: dict[str, int] = Field(default_factory=dict)
    failed_units: list[str] = Field(default_factory=list)
    render_failures: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @classmethod
    def from_report(cls, report: RunReport, **kwargs) -> AuditEntry:
        return cls(
            run_id=report.run_id,
            platform=report.platform,
            status=report.status,
            dry_run=report.dry_run,
            cancelled=report.cancelled,
            counts=report.counts,
            failed_units=report.failed_units,
            **kwargs,
        )


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, state_dir: Path | None = None, path: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(DEFAULT_AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an audit entry; a failed write is logged, not raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s", entry.run_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """All entries, oldest first; corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return self.read_all()[-n:]

"""
Detection and outcome models — what the engine learned and what it did.

``Detection`` is the read-only answer of a presence check.  ``InstallOutcome`` is
the single terminal result recorded for each unit in a run.  Like the
adapter receipts they are modelled on, outcomes carry failures as data;
nothing here raises.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class Presence(StrEnum):
    """Tri-state result of detecting a unit."""

    ABSENT = "absent"
    STALE = "stale"          # present, below the declared minimum
    CURRENT = "current"      # present at the desired version


class Detection(BaseModel):
    """Result of one detection pass over a unit."""

    presence: Presence = Presence.ABSENT
    version: str | None = None
    warning: str | None = None

    @property
    def present(self) -> bool:
        return self.presence != Presence.ABSENT


OutcomeStatus = Literal["installed", "already_present", "upgraded", "failed", "skipped"]

# Outcomes after which the unit counts as available to dependents
# and to config rendering.
SATISFIED_STATUSES: frozenset[str] = frozenset({"installed", "already_present", "upgraded"})


class InstallOutcome(BaseModel):
    """Terminal outcome of one unit in one run."""

    status: OutcomeStatus
    reason: str = ""
    output: str = ""                 # captured installer output (failures only)
    version: str | None = None
    warnings: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the unit is in place after this run."""
        return self.status in SATISFIED_STATUSES

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def installed(cls, version: str | None = None, **kwargs: Any) -> InstallOutcome:
        return cls(status="installed", version=version, **kwargs)

    @classmethod
    def already_present(cls, version: str | None = None, **kwargs: Any) -> InstallOutcome:
        return cls(status="already_present", version=version, **kwargs)

    @classmethod
    def upgraded(cls, version: str | None = None, **kwargs: Any) -> InstallOutcome:
        return cls(status="upgraded", version=version, **kwargs)

    @classmethod
    def failure(cls, reason: str, output: str = "", **kwargs: Any) -> InstallOutcome:
        """Create a failed outcome, keeping the captured output."""
        return cls(status="failed", reason=reason, output=output, **kwargs)

    @classmethod
    def skip(cls, reason: str, **kwargs: Any) -> InstallOutcome:
        return cls(status="skipped", reason=reason, **kwargs)

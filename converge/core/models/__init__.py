"""
Domain models — pydantic types for the convergence engine.

All models are re-exported here for convenient access:

    from converge.core.models import Unit, Catalog, InstallOutcome, RunReport
"""

from converge.core.models.catalog import ArtifactSpec, Catalog
from converge.core.models.outcome import (
    SATISFIED_STATUSES,
    Detection,
    InstallOutcome,
    Presence,
)
from converge.core.models.report import ReportEntry, RunReport
from converge.core.models.unit import SourceKind, Unit

__all__ = [
    "SATISFIED_STATUSES",
    # catalog.py
    "ArtifactSpec",
    "Catalog",
    # outcome.py
    "Detection",
    "InstallOutcome",
    "Presence",
    # report.py
    "ReportEntry",
    "RunReport",
    # unit.py
    "SourceKind",
    "Unit",
]

"""
Stage planner — orders catalog units into dependency stages.

Pure: no I/O, no subprocess.  A stage holds units with no dependency
edges between them; every unit's dependencies live in earlier stages.
Within a stage, units keep catalog declaration order so that plans are
stable and diffable run to run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from converge.core.errors import ConfigurationError
from converge.core.models.catalog import Catalog
from converge.core.models.unit import Unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """A dependency-ordered batch of units."""

    index: int
    units: tuple[Unit, ...]

    @property
    def ids(self) -> list[str]:
        return [u.id for u in self.units]


@dataclass
class Plan:
    """The ordered stage list for one catalog."""

    platform: str = ""
    stages: list[Stage] = field(default_factory=list)

    @property
    def units(self) -> list[Unit]:
        """All units in execution order."""
        return [u for stage in self.stages for u in stage.units]

    @property
    def total_units(self) -> int:
        return sum(len(s.units) for s in self.stages)

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "total_units": self.total_units,
            "stages": [
                {"index": s.index, "units": s.ids} for s in self.stages
            ],
        }


def _cycle_members(remaining: dict[str, set[str]]) -> list[str]:
    """Strip units nothing else in ``remaining`` depends on, repeatedly.

    What survives sits on a dependency cycle; units that merely hang
    off a cycle are peeled away.
    """
    nodes = {uid: set(deps) for uid, deps in remaining.items()}
    changed = True
    while changed:
        changed = False
        depended_on = {d for deps in nodes.values() for d in deps}
        for uid in list(nodes):
            if uid not in depended_on:
                del nodes[uid]
                changed = True
        for deps in nodes.values():
            deps.intersection_update(nodes)
    return sorted(nodes)


def plan(catalog: Catalog) -> Plan:
    """Topologically sort the catalog into stages (Kahn's algorithm).

    Args:
        catalog: A validated catalog (ids unique, references known).

    Returns:
        Plan whose stages respect every declared dependency.

    Raises:
        ConfigurationError: If the dependency graph has a cycle; the
            error names the units on the cycle.
    """
    order = {u.id: i for i, u in enumerate(catalog.units)}
    pending: dict[str, set[str]] = {u.id: set(u.depends_on) for u in catalog.units}
    by_id = {u.id: u for u in catalog.units}

    result = Plan(platform=catalog.platform)
    placed: set[str] = set()

    while pending:
        ready = sorted(
            (uid for uid, deps in pending.items() if deps <= placed),
            key=order.__getitem__,
        )
        if not ready:
            members = _cycle_members(pending)
            raise ConfigurationError(
                f"Dependency cycle between units: {', '.join(members)}",
                units=members,
            )
        result.stages.append(
            Stage(index=len(result.stages), units=tuple(by_id[uid] for uid in ready))
        )
        for uid in ready:
            placed.add(uid)
            del pending[uid]

    logger.debug(
        "Planned %d units into %d stages", result.total_units, len(result.stages),
    )
    return result

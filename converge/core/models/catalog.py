"""
Catalog model — the immutable, ordered set of units for one platform.

The catalog is built once at start-up (usually from YAML via
``converge.core.config.loader``) and then only read.  Construction
validates identity and references; cycle detection belongs to the
stage planner because it needs the whole graph walk anyway.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

from converge.core.errors import ConfigurationError
from converge.core.models.unit import Unit


class ArtifactSpec(BaseModel):
    """A derived configuration file and the generator that produces it."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    generator: str
    backup: bool = True


class Catalog(BaseModel):
    """Ordered collection of all units for a given platform.

    Declaration order is significant: the planner breaks ties with it,
    which keeps plans and reports diffable across runs.
    """

    model_config = ConfigDict(frozen=True)

    platform: str = ""
    units: tuple[Unit, ...] = ()
    artifacts: tuple[ArtifactSpec, ...] = ()

    @model_validator(mode="after")
    def _check_references(self) -> Catalog:
        seen: set[str] = set()
        duplicates: list[str] = []
        for unit in self.units:
            if unit.id in seen and unit.id not in duplicates:
                duplicates.append(unit.id)
            seen.add(unit.id)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate unit id(s): {', '.join(duplicates)}",
                units=duplicates,
            )

        unknown: list[str] = []
        for unit in self.units:
            for dep in unit.depends_on:
                if dep not in seen:
                    unknown.append(f"'{unit.id}' depends on unknown unit '{dep}'")
        if unknown:
            raise ConfigurationError(
                "; ".join(unknown),
                units=sorted({u.id for u in self.units if set(u.depends_on) - seen}),
            )

        names = [a.name for a in self.artifacts]
        dup_artifacts = sorted({n for n in names if names.count(n) > 1})
        if dup_artifacts:
            raise ConfigurationError(
                f"Duplicate artifact name(s): {', '.join(dup_artifacts)}"
            )
        return self

    # ── Lookups ──────────────────────────────────────────────────

    @property
    def ids(self) -> list[str]:
        return [u.id for u in self.units]

    def get(self, unit_id: str) -> Unit | None:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def __len__(self) -> int:
        return len(self.units)

    # ── Derived catalogs ─────────────────────────────────────────

    def for_platform(self, platform: str) -> Catalog:
        """Keep only the units declared for ``platform``."""
        return Catalog(
            platform=self.platform,
            units=tuple(u for u in self.units if u.applies_to(platform)),
            artifacts=self.artifacts,
        )

    def select(self, unit_ids: list[str]) -> Catalog:
        """Narrow the catalog to ``unit_ids`` plus everything they depend on.

        Raises:
            ConfigurationError: If a requested id is not in the catalog.
        """
        missing = [uid for uid in unit_ids if self.get(uid) is None]
        if missing:
            raise ConfigurationError(
                f"Unknown unit(s): {', '.join(missing)}", units=missing,
            )

        wanted: set[str] = set()
        stack = list(unit_ids)
        while stack:
            uid = stack.pop()
            if uid in wanted:
                continue
            wanted.add(uid)
            unit = self.get(uid)
            if unit is not None:
                stack.extend(unit.depends_on)

        return Catalog(
            platform=self.platform,
            units=tuple(u for u in self.units if u.id in wanted),
            artifacts=self.artifacts,
        )

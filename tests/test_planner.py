"""
Tests for the stage planner — ordering, tie-breaking, cycle rejection.
"""

import pytest

from converge.core.engine.planner import plan
from converge.core.errors import ConfigurationError
from converge.core.models import Catalog, SourceKind, Unit


def _catalog(*specs: tuple[str, tuple[str, ...]]) -> Catalog:
    return Catalog(units=tuple(
        Unit(id=uid, kind=SourceKind.SYSTEM_PACKAGE, depends_on=deps)
        for uid, deps in specs
    ))


class TestPlan:
    def test_independent_units_share_one_stage(self):
        result = plan(_catalog(("git", ()), ("curl", ()), ("jq", ())))
        assert len(result.stages) == 1
        assert result.stages[0].ids == ["git", "curl", "jq"]

    def test_dependencies_come_first(self):
        result = plan(_catalog(
            ("codex", ("node",)),
            ("node", ("homebrew",)),
            ("homebrew", ()),
        ))
        assert [s.ids for s in result.stages] == [["homebrew"], ["node"], ["codex"]]

    def test_ties_broken_by_declaration_order(self):
        result = plan(_catalog(
            ("zoxide", ("curl",)),
            ("curl", ()),
            ("lsd", ("curl",)),
            ("git", ()),
        ))
        assert [s.ids for s in result.stages] == [["curl", "git"], ["zoxide", "lsd"]]

    def test_every_dependency_in_earlier_stage(self):
        catalog = _catalog(
            ("a", ()), ("b", ("a",)), ("c", ("a", "b")), ("d", ()), ("e", ("d", "c")),
        )
        stage_of = {uid: s.index for s in plan(catalog).stages for uid in s.ids}
        for unit in catalog.units:
            for dep in unit.depends_on:
                assert stage_of[dep] < stage_of[unit.id]

    def test_plan_is_deterministic(self):
        catalog = _catalog(("b", ("a",)), ("a", ()), ("c", ()))
        assert plan(catalog).to_dict() == plan(catalog).to_dict()

    def test_empty_catalog(self):
        result = plan(Catalog())
        assert result.stages == []
        assert result.total_units == 0

    def test_to_dict(self):
        d = plan(_catalog(("a", ()), ("b", ("a",)))).to_dict()
        assert d["total_units"] == 2
        assert d["stages"] == [{"index": 0, "units": ["a"]}, {"index": 1, "units": ["b"]}]


class TestCycles:
    def test_two_unit_cycle_names_both(self):
        with pytest.raises(ConfigurationError) as exc:
            plan(_catalog(("x", ("y",)), ("y", ("x",))))
        assert exc.value.units == ["x", "y"]
        assert "x" in str(exc.value) and "y" in str(exc.value)

    def test_self_dependency(self):
        with pytest.raises(ConfigurationError) as exc:
            plan(_catalog(("x", ("x",)),))
        assert exc.value.units == ["x"]

    def test_bystanders_not_named(self):
        with pytest.raises(ConfigurationError) as exc:
            plan(_catalog(
                ("ok", ()),
                ("x", ("y", "ok")),
                ("y", ("z",)),
                ("z", ("x",)),
                ("downstream", ("x",)),
            ))
        assert exc.value.units == ["x", "y", "z"]

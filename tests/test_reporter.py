"""
Tests for the reporter — per-unit lines and the aggregate tally.
"""

from pathlib import Path

from converge.core.models import Detection, InstallOutcome, Presence, RunReport, SourceKind, Unit
from converge.core.rendering.renderer import RenderResult
from converge.core.reporting.reporter import (
    FAILURE_TAIL_LINES,
    summarize,
    summarize_renders,
    summarize_status,
    tally,
)


def _unit(uid: str) -> Unit:
    return Unit(id=uid, kind=SourceKind.SYSTEM_PACKAGE)


def _report() -> RunReport:
    report = RunReport(run_id="run-1", platform="ubuntu")
    report.record(_unit("git"), InstallOutcome.already_present("2.43.0"))
    report.record(_unit("ripgrep"), InstallOutcome.installed())
    report.record(
        _unit("lsd"),
        InstallOutcome.failure("install failed (exit 1)", output="curl: (6) Could not resolve host"),
    )
    report.record(_unit("lsd-config"), InstallOutcome.skip("dependency unit failed: lsd"))
    return report


class TestSummarize:
    def test_every_unit_once(self):
        text = summarize(_report())
        for uid in ("git", "ripgrep", "lsd", "lsd-config"):
            assert sum(1 for line in text.splitlines() if f" {uid} " in line) == 1

    def test_statuses_and_reasons(self):
        text = summarize(_report())
        assert "already present (2.43.0)" in text
        assert "failed: install failed (exit 1)" in text
        assert "skipped: dependency unit failed: lsd" in text

    def test_failure_output_shown(self):
        text = summarize(_report())
        assert "│ curl: (6) Could not resolve host" in text
        assert "Failed: lsd" in text

    def test_success_output_not_shown(self):
        report = RunReport()
        report.record(_unit("a"), InstallOutcome.installed(output="lots of noise"))
        assert "lots of noise" not in summarize(report)

    def test_long_output_truncated_unless_verbose(self):
        output = "\n".join(f"line {i}" for i in range(100))
        report = RunReport()
        report.record(_unit("a"), InstallOutcome.failure("boom", output=output))
        short = summarize(report)
        assert "line 0\n" not in short
        assert "line 99" in short
        assert f"{100 - FAILURE_TAIL_LINES} earlier line(s) omitted" in short
        assert "line 0" in summarize(report, verbose=True)

    def test_warnings_only_when_verbose(self):
        report = RunReport()
        report.record(_unit("a"), InstallOutcome.installed(warnings=["lookup failed"]))
        assert "lookup failed" not in summarize(report)
        assert "⚠ lookup failed" in summarize(report, verbose=True)

    def test_tally(self):
        line = tally(_report())
        assert "Installed: 1" in line
        assert "Already present: 1" in line
        assert "Upgraded: 0" in line
        assert "Failed: 1" in line
        assert "Skipped: 1" in line
        assert "(4 units)" in line

    def test_cancelled_note(self):
        report = _report()
        report.cancelled = True
        assert "Run cancelled" in summarize(report)

    def test_header(self):
        report = _report()
        report.dry_run = True
        assert summarize(report).splitlines()[0] == "converge run-1 (ubuntu) [dry run]"


class TestSummarizeRenders:
    def test_statuses(self):
        text = summarize_renders([
            RenderResult(name="tools", path=Path("/h/30-tools.zsh"), status="unchanged"),
            RenderResult(
                name="ai", path=Path("/h/50-claude.zsh"), status="backed_up_and_written",
                backup_path=Path("/h/50-claude.zsh.bak.1"),
            ),
            RenderResult(name="linux", path=Path("/h/85"), status="failed", error="denied"),
        ])
        assert "tools: unchanged" in text
        assert "backup at /h/50-claude.zsh.bak.1" in text
        assert "✗ linux: denied" in text


class TestSummarizeStatus:
    def test_rows(self):
        text = summarize_status([
            (_unit("git"), Detection(presence=Presence.CURRENT, version="2.43.0")),
            (_unit("node"), Detection(presence=Presence.STALE, version="18.0")),
            (_unit("lsd"), Detection(presence=Presence.ABSENT, warning="lookup failed")),
        ])
        lines = text.splitlines()
        assert "current (2.43.0)" in lines[0]
        assert "stale (18.0)" in lines[1]
        assert "absent" in lines[2] and "lookup failed" in lines[2]

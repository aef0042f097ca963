"""
Tests for the installer — outcome classification and post-install verification.
"""

from converge.adapters.mock import MockBackend
from converge.adapters.registry import BackendRegistry
from converge.core.execution.installer import Installer
from converge.core.execution.subprocess_runner import EXIT_NOT_FOUND, CommandResult, run_command
from converge.core.models import Detection, Presence, SourceKind, Unit


def _unit(uid: str = "tool", **kwargs) -> Unit:
    return Unit(id=uid, kind=SourceKind.SYSTEM_PACKAGE, **kwargs)


class _RaisingBackend(MockBackend):
    def install(self, unit):
        raise RuntimeError("backend bug")


class _NotApplicableBackend(MockBackend):
    def install(self, unit):
        return CommandResult(exit_code=0, output="gh is not signed in\n", skipped=True)


class TestInstaller:
    def test_installed(self, mock_registry, mock_backend):
        mock_backend.set_install_version("tool", "2.0")
        outcome = Installer(mock_registry).install(_unit())
        assert outcome.status == "installed"
        assert outcome.version == "2.0"
        assert outcome.output == ""
        assert mock_backend.calls("install") == ["tool"]

    def test_non_zero_exit_is_failed_with_output(self, mock_registry, mock_backend):
        mock_backend.set_failure("tool", output="E: Unable to locate package tool", exit_code=100)
        outcome = Installer(mock_registry).install(_unit())
        assert outcome.failed
        assert outcome.reason == "install failed (exit 100)"
        assert "Unable to locate package" in outcome.output

    def test_silent_noop_fails_verification(self, mock_registry, mock_backend):
        mock_backend.set_noop("tool")
        outcome = Installer(mock_registry).install(_unit())
        assert outcome.failed
        assert outcome.reason == "post-install verification failed"

    def test_stale_is_upgraded(self, mock_registry, mock_backend):
        mock_backend.set_installed("node", "18.0")
        mock_backend.set_install_version("node", "20.11.0")
        detection = Detection(presence=Presence.STALE, version="18.0")
        outcome = Installer(mock_registry).install(_unit("node", min_version="20"), detection)
        assert outcome.status == "upgraded"
        assert outcome.version == "20.11.0"
        assert mock_backend.calls("upgrade") == ["node"]
        assert mock_backend.calls("install") == []

    def test_still_stale_after_upgrade_warns(self, mock_registry, mock_backend):
        mock_backend.set_installed("node", "18.0")
        mock_backend.set_install_version("node", "19.0")
        detection = Detection(presence=Presence.STALE, version="18.0")
        outcome = Installer(mock_registry).install(_unit("node", min_version="20"), detection)
        assert outcome.status == "upgraded"
        assert any("still below minimum 20" in w for w in outcome.warnings)

    def test_backend_exception_is_failed(self):
        registry = BackendRegistry(mock_mode=True, mock_backend=_RaisingBackend())
        outcome = Installer(registry).install(_unit())
        assert outcome.failed
        assert "RuntimeError" in outcome.reason
        assert "backend bug" in outcome.reason

    def test_not_applicable_is_skipped(self):
        registry = BackendRegistry(mock_mode=True, mock_backend=_NotApplicableBackend())
        outcome = Installer(registry).install(_unit())
        assert outcome.skipped
        assert outcome.reason == "gh is not signed in"

    def test_detection_warning_carried(self, mock_registry):
        detection = Detection(presence=Presence.ABSENT, warning="lookup failed")
        outcome = Installer(mock_registry).install(_unit(), detection)
        assert outcome.status == "installed"
        assert outcome.warnings == ["lookup failed"]

    def test_no_backend(self):
        outcome = Installer(BackendRegistry()).install(_unit())
        assert outcome.failed
        assert "no backend" in outcome.reason


class TestCommandResult:
    def test_ok(self):
        assert CommandResult(exit_code=0).ok
        assert not CommandResult(exit_code=1).ok

    def test_command_line_quotes(self):
        result = CommandResult(exit_code=0, command=["bash", "-c", "echo hi"])
        assert result.command_line == "bash -c 'echo hi'"


class TestRunCommand:
    def test_captures_combined_output(self):
        result = run_command(["bash", "-c", "echo out; echo err >&2; exit 3"])
        assert result.exit_code == 3
        assert "out" in result.output and "err" in result.output

    def test_undecodable_bytes_are_replaced(self):
        result = run_command(["bash", "-c", r"printf 'ok \377\376 done\n'"])
        assert result.ok
        assert "\ufffd" in result.output
        assert result.output.startswith("ok ")
        assert "done" in result.output

    def test_missing_program_is_127(self):
        result = run_command(["converge-no-such-program"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert "command not found" in result.output

    def test_timeout_is_124(self):
        result = run_command(["bash", "-c", "sleep 5"], timeout=0.2)
        assert result.exit_code == 124
        assert "timed out" in result.output
